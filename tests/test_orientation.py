import pytest

from tunebridge.core.orientation import (
    LEFT,
    NO_DASH,
    RIGHT,
    channel_artist,
    overlaps_artist,
    resolve_orientation,
    strip_upload_noise,
)


def test_channel_artist():
    assert channel_artist("Adele - Topic") == "Adele"
    assert channel_artist("AdeleVEVO") == "Adele"
    assert channel_artist("Various Artists - Topic") is None
    assert channel_artist("Some Channel") is None
    assert channel_artist("") is None


def test_overlaps_artist():
    assert overlaps_artist("Adele", "Adele")
    assert overlaps_artist("Daft Punk feat. Pharrell", "Pharrell Williams")
    assert overlaps_artist("Linkin Park", "LinkinPark")
    assert not overlaps_artist("Hello", "Adele")
    assert not overlaps_artist("", "Adele")


def test_strip_upload_noise_keeps_version_groups():
    assert strip_upload_noise("Song (Live) [Official Video]") == "Song (Live)"
    assert strip_upload_noise("Song (Lyrics)") == "Song"
    assert strip_upload_noise("Song (Demo)") == "Song (Demo)"


def test_channel_rule_left():
    guess = resolve_orientation("Adele - Hello (Official Video)", "AdeleVEVO")
    assert guess.rule == "channel"
    assert guess.trusted is True
    assert guess.orientation == LEFT
    assert guess.artist == "Adele"
    assert guess.title_core == "Hello"


def test_channel_rule_right():
    guess = resolve_orientation("Hello - Adele", "Adele - Topic")
    assert guess.rule == "channel"
    assert guess.orientation == RIGHT
    assert guess.artist == "Adele"
    assert guess.title_core == "Hello"


def test_marker_rule():
    guess = resolve_orientation("Daft Punk feat. Pharrell - Get Lucky", "Random Uploads")
    assert guess.rule == "marker"
    assert guess.trusted is False
    assert guess.artist == "Daft Punk feat. Pharrell"
    assert guess.title_core == "Get Lucky"


def test_token_count_rule():
    guess = resolve_orientation("Get Lucky Tonight Again - Muse", "Random Uploads")
    assert guess.rule == "token_count"
    assert guess.orientation == RIGHT
    assert guess.artist == "Muse"


def test_default_rule_is_left():
    guess = resolve_orientation("Hello - World", "")
    assert guess.rule == "default"
    assert guess.orientation == LEFT
    assert guess.artist == "Hello"
    assert guess.trusted is False


def test_no_dash_uses_channel_artist():
    guess = resolve_orientation("Hello (Live)", "Adele - Topic")
    assert guess.orientation == NO_DASH
    assert guess.artist == "Adele"
    assert guess.trusted is True
    assert guess.title_core == "Hello (Live)"


def test_hyphenated_words_are_not_split():
    guess = resolve_orientation("Jay-Z Story", "")
    assert guess.orientation == NO_DASH
    assert guess.artist is None
    assert guess.trusted is False


@pytest.mark.parametrize("title", ["Adele -Hello", "Adele- Hello", "Adele–Hello", "Adele — Hello"])
def test_one_sided_and_long_dashes_split(title):
    guess = resolve_orientation(title, "AdeleVEVO")
    assert guess.orientation == LEFT
    assert guess.artist == "Adele"
    assert guess.title_core == "Hello"
