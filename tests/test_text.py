import pytest

from tunebridge.core.text import flatten, is_unintelligible, jaccard, normalize, tokenize


def test_normalize_strips_official_groups_and_markers():
    assert normalize("Song Name (Official Music Video) [HD]") == "song name"
    assert normalize("Track [Official Audio] 4K") == "track"


def test_normalize_keeps_unicode_letters():
    assert normalize("Café—Déjà Vu!") == "café déjà vu"


def test_normalize_handles_none():
    assert normalize(None) == ""


def test_flatten_keeps_marker_words():
    assert flatten("Song (Live) - Remastered") == "song live remastered"


def test_tokenize_drops_short_words_and_stopwords():
    assert tokenize("The Sound of Silence") == ["sound", "silence"]
    assert tokenize("U2") == []


def test_jaccard():
    assert jaccard("Hello World", "world hello") == 1.0
    assert jaccard("hello world", "hello there") == pytest.approx(1 / 3)
    assert jaccard("", "") == 1.0
    assert jaccard("hello", "") == 0.0


@pytest.mark.parametrize("parts,expected", [
    (("",), True),
    (("!!",), True),
    (("a",), True),
    ((None, "  "), True),
    (("U2",), False),
    (("Hello",), False),
    (("", "Runaway"), False),
    (("🎵🎶",), True),
    (("🔥🔥🔥",), True),
    (("❤️",), True),
])
def test_is_unintelligible(parts, expected):
    assert is_unintelligible(*parts) is expected


@pytest.mark.parametrize("a,b", [
    ("Hello World", "Hello"),
    ("Runaway (Live)", "Runaway"),
    ("Électrique Amour", "electrique amour remix"),
])
def test_jaccard_is_symmetric(a, b):
    assert jaccard(a, b) == jaccard(b, a)
    assert jaccard(a, a) == 1.0
