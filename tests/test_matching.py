import dataclasses
from datetime import timedelta

import pytest

from conftest import BASE_TIME, FakeCatalog, track, video
from tunebridge.core.matching import (
    POOL_ESCALATED,
    channel_trust,
    duration_closeness,
    duration_within,
    find_source_match,
    find_target_match,
    match_to_source,
    match_to_target,
    popularity_score,
    target_rejection,
)
from tunebridge.core.models import MatchReason
from tunebridge.core.orientation import resolve_orientation

NOW = BASE_TIME + timedelta(days=365)

HELLO = track("t1", "Hello", "Adele", seconds=295)


def good_video(item_id="v1", **kw):
    return video(item_id, "Adele - Hello (Official Music Video)", "AdeleVEVO", seconds=297, **kw)


def off_duration(item_id):
    return video(item_id, "Adele - Hello", "AdeleVEVO", seconds=400)


# ----------------------------
# Helpers
# ----------------------------


def test_duration_within():
    assert duration_within(200_000, 205_000, 7000)
    assert not duration_within(200_000, 208_000, 7000)
    assert duration_within(None, 208_000, 7000)
    assert not duration_within(200_000, None, 7000)


def test_duration_closeness():
    assert duration_closeness(200_000, 200_000, 7000) == 1.0
    assert duration_closeness(200_000, 207_000, 7000) == 0.0
    assert duration_closeness(None, 200_000, 7000) == 0.0


def test_channel_trust_ordering():
    assert channel_trust("Adele", "Adele") == 1.0
    assert channel_trust("Adele", "Adele - Topic") == 0.85
    assert channel_trust("Adele", "AdeleVEVO") == 0.7
    assert channel_trust("Adele", "Adele Fan Club") == 0.5
    assert channel_trust("Adele", "Music Hub") == 0.0


def test_popularity_score_halved_for_recent_uploads():
    old = video("a", "x", "c", view_count=10 ** 9 - 1, published_at=NOW - timedelta(days=400))
    new = video("b", "x", "c", view_count=10 ** 9 - 1, published_at=NOW - timedelta(days=10))
    assert popularity_score(old, NOW) == pytest.approx(1.0)
    assert popularity_score(new, NOW) == pytest.approx(0.5)
    assert popularity_score(video("c", "x", "c"), NOW) == 0.0


# ----------------------------
# Source -> target
# ----------------------------


def test_good_candidate_passes_filters():
    assert target_rejection(HELLO, good_video(), 7000) is None


def test_rejection_reasons():
    assert target_rejection(HELLO, off_duration("v"), 7000) == "duration"
    assert target_rejection(HELLO, video("v", "Adele - Hello (Live at the BBC)", "AdeleVEVO", seconds=295), 7000) == "version:live"
    assert target_rejection(HELLO, video("v", "Hello", "Music Hub", seconds=295), 7000) == "artist"
    assert target_rejection(HELLO, video("v", "Adele - Skyfall", "AdeleVEVO", seconds=295), 7000) == "title_coverage"
    assert target_rejection(HELLO, video("v", "Adele - Hello", "AdeleVEVO", seconds=50), 300_000) == "short_clip"
    assert target_rejection(HELLO, dataclasses.replace(good_video("v"), duration_ms=None), 7000) == "duration"


def test_unknown_source_duration_skips_duration_filter():
    item = dataclasses.replace(HELLO, duration_ms=None)
    assert target_rejection(item, off_duration("v"), 7000) is None


def test_match_in_first_five_does_not_escalate():
    pool = [off_duration("x0"), off_duration("x1"), good_video("v1")] + [off_duration(f"y{i}") for i in range(7)]
    result = match_to_target(HELLO, pool, now=NOW)
    assert result.matched
    assert result.best.item_id == "v1"
    assert result.escalated is False
    assert result.inspected_count == 5


def test_escalates_to_find_match_at_position_seven():
    pool = [off_duration(f"x{i}") for i in range(6)] + [good_video("v7")] + [off_duration("z")]
    result = match_to_target(HELLO, pool, now=NOW)
    assert result.matched
    assert result.best.item_id == "v7"
    assert result.escalated is True
    assert result.inspected_count == len(pool)


def test_no_results_and_no_survivors():
    assert match_to_target(HELLO, [], now=NOW).reason is MatchReason.NO_SEARCH_RESULTS

    pool = [off_duration(f"x{i}") for i in range(12)]
    result = match_to_target(HELLO, pool, now=NOW)
    assert result.reason is MatchReason.NO_CANDIDATE_PASSED_FILTERS
    assert result.inspected_count == POOL_ESCALATED
    assert result.escalated is True


def test_topic_channel_beats_reupload():
    reupload = video("va", "Adele - Hello", "Random Uploads", seconds=295)
    topic = video("vb", "Hello", "Adele - Topic", seconds=295)
    result = match_to_target(HELLO, [reupload, topic], now=NOW)
    assert result.best.item_id == "vb"


def test_ties_go_to_earlier_candidate():
    first = good_video("first")
    second = good_video("second")
    assert match_to_target(HELLO, [first, second], now=NOW).best.item_id == "first"
    assert match_to_target(HELLO, [second, first], now=NOW).best.item_id == "second"


def test_matching_is_deterministic():
    pool = [good_video("a", view_count=1000), good_video("b", view_count=5000)]
    results = {
        (r.best.item_id, r.score)
        for r in (match_to_target(HELLO, pool, now=NOW) for _ in range(5))
    }
    assert len(results) == 1
    assert results.pop()[0] == "b"


def test_find_target_match_queries_artist_and_title():
    catalog = FakeCatalog(search_results={"Adele Hello": [good_video()]})
    result = find_target_match(HELLO, catalog, now=NOW)
    assert result.best.item_id == "v1"
    assert catalog.queries == ["Adele Hello"]


def test_find_target_match_skips_unintelligible_query():
    catalog = FakeCatalog()
    result = find_target_match(track("t", "!!", ""), catalog)
    assert result.reason is MatchReason.UNINTELLIGIBLE_QUERY
    assert catalog.queries == []


# ----------------------------
# Target -> source
# ----------------------------


def test_trusted_channel_blocks_other_artists():
    item = video("v1", "Adele - Hello (Official Video)", "AdeleVEVO", seconds=295)
    adele = track("s1", "Hello", "Adele", seconds=295)
    lionel = track("s2", "Hello", "Lionel Richie", seconds=295)
    catalog = FakeCatalog(search_results={
        "Adele Hello": [adele],
        "Hello": [lionel, adele],
    })

    result = find_source_match(item, catalog)
    assert catalog.queries == ["Adele Hello", "Hello"]
    assert result.best.item_id == "s1"
    assert result.exact_title is True


def test_untrusted_guess_does_not_block_artist():
    item = video("v2", "Adele - Hello", "Random Uploads", seconds=295)
    guess = resolve_orientation(item.title, item.channel_title)
    assert guess.trusted is False

    result = match_to_source(item, [track("s2", "Hello", "Lionel Richie", seconds=295)], guess)
    assert result.best.item_id == "s2"


def test_untrusted_guess_searches_title_only():
    item = video("v2", "Adele - Hello", "Random Uploads", seconds=295)
    catalog = FakeCatalog()
    result = find_source_match(item, catalog)
    assert catalog.queries == ["Hello"]
    assert result.reason is MatchReason.NO_SEARCH_RESULTS


def test_live_upload_requires_live_track():
    item = video("v3", "Adele - Hello (Live at the BBC)", "AdeleVEVO", seconds=295)
    guess = resolve_orientation(item.title, item.channel_title)
    studio = track("s1", "Hello", "Adele", seconds=295)
    live = track("s3", "Hello - Live at the BBC", "Adele", seconds=295)

    result = match_to_source(item, [studio, live], guess)
    assert result.best.item_id == "s3"


def test_lyric_upload_noise_is_not_required():
    item = video("v4", "Adele - Hello (Lyrics)", "AdeleVEVO", seconds=295)
    guess = resolve_orientation(item.title, item.channel_title)
    result = match_to_source(item, [track("s1", "Hello", "Adele", seconds=295)], guess)
    assert result.best.item_id == "s1"


def test_music_video_bypasses_artist_block():
    item = video("v5", "Adele - Hello", "AdeleVEVO", seconds=295)
    guess = resolve_orientation(item.title, item.channel_title)
    mv = track("s4", "Hello (Official Music Video)", "Someone Else", seconds=295)

    result = match_to_source(item, [mv], guess)
    assert result.best.item_id == "s4"
    assert result.exact_title is False


def test_exact_title_overrides_higher_score():
    item = video("v6", "Adele - Hello", "AdeleVEVO", seconds=295)
    guess = resolve_orientation(item.title, item.channel_title)
    popular = track("sb", "Hello Again", "Adele", seconds=295, popularity=100)
    exact = track("sa", "Hello", "Adele", seconds=290, popularity=0)

    result = match_to_source(item, [popular, exact], guess)
    assert result.best.item_id == "sa"
    assert result.exact_title is True


def test_find_source_match_skips_unintelligible_title():
    catalog = FakeCatalog()
    result = find_source_match(video("v", "!!!", "Some Channel"), catalog)
    assert result.reason is MatchReason.UNINTELLIGIBLE_QUERY
    assert catalog.queries == []
