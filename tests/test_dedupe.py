import dataclasses

from conftest import track, video
from tunebridge.core.dedupe import duration_tolerance_ms, find_soft_duplicate, title_without_artists
from tunebridge.core.models import SP2YT, YT2SP


def test_duration_tolerance():
    assert duration_tolerance_ms(200_000) == 12_000
    assert duration_tolerance_ms(600_000) == 24_000


def test_track_matches_existing_video():
    item = track("t1", "Hello", "Adele", seconds=295)
    dest = [video("v1", "Adele - Hello (Official Video)", "AdeleVEVO", seconds=300)]
    assert find_soft_duplicate(item, dest, SP2YT).item_id == "v1"


def test_duration_gate():
    item = track("t1", "Hello", "Adele", seconds=295)
    dest = [video("v1", "Adele - Hello", "AdeleVEVO", seconds=325)]
    assert find_soft_duplicate(item, dest, SP2YT) is None


def test_long_tracks_get_proportional_tolerance():
    item = track("t1", "Hello", "Adele", seconds=600)
    dest = [video("v1", "Adele - Hello", "AdeleVEVO", seconds=620)]
    assert find_soft_duplicate(item, dest, SP2YT).item_id == "v1"


def test_unknown_durations_never_match():
    item = dataclasses.replace(track("t1", "Hello", "Adele"), duration_ms=None)
    dest = [video("v1", "Adele - Hello", "AdeleVEVO")]
    assert find_soft_duplicate(item, dest, SP2YT) is None

    item = track("t1", "Hello", "Adele")
    dest = [dataclasses.replace(video("v1", "Adele - Hello", "AdeleVEVO"), duration_ms=None)]
    assert find_soft_duplicate(item, dest, SP2YT) is None


def test_artist_must_appear():
    item = track("t1", "Hello", "Lionel Richie", seconds=295)
    dest = [video("v1", "Adele - Hello", "AdeleVEVO", seconds=295)]
    assert find_soft_duplicate(item, dest, SP2YT) is None


def test_video_matches_existing_track():
    item = video("v1", "Adele - Hello (Official Video)", "AdeleVEVO", seconds=295)
    dest = [track("s1", "Hello", "Adele", seconds=300)]
    assert find_soft_duplicate(item, dest, YT2SP).item_id == "s1"


def test_best_title_wins_and_ties_keep_first():
    item = track("t1", "Hello", "Adele", seconds=295)
    weaker = video("v0", "Adele - Hello Again", "AdeleVEVO", seconds=295)
    first = video("v1", "Hello", "Adele", seconds=295)
    second = video("v2", "Hello", "Adele", seconds=295)
    assert find_soft_duplicate(item, [weaker, first, second], SP2YT).item_id == "v1"


def test_multi_word_artist_in_video_title():
    item = track("t1", "Otherside", "Red Hot Chili Peppers", seconds=255)
    dest = [video("v1", "Red Hot Chili Peppers - Otherside [Official Music Video]",
                  "Red Hot Chili Peppers", seconds=258)]
    assert find_soft_duplicate(item, dest, SP2YT).item_id == "v1"


def test_artist_removal_is_whole_phrase():
    assert title_without_artists("Red Hot Chili Peppers - Otherside", ["Red Hot Chili Peppers"]) == "otherside"
    assert title_without_artists("Adele - Hello", ["Del"]) == "adele hello"
    assert title_without_artists("Adele", ["Adele"]) == ""


def test_artist_only_title_does_not_match_everything():
    item = track("t1", "Hello", "Adele", seconds=295)
    dest = [video("v1", "Adele", "AdeleVEVO", seconds=295)]
    assert find_soft_duplicate(item, dest, SP2YT) is None
