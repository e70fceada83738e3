"""
Cross-catalog matchers.

Each direction is split in two:

- a pure function over a fixed candidate pool (match_to_target,
  match_to_source) that applies the hard filters, scores the survivors
  and picks a winner, and
- a thin wrapper (find_target_match, find_source_match) that guards the
  query, calls the catalog's search and hands the pool over.

Escalation: the filters first run over the top POOL_INITIAL candidates;
if nothing survives they run once more over the top POOL_ESCALATED.
A single search call fetches the wider pool up front.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Sequence

from tunebridge.core.classify import (
    content_type_bonus,
    disallowed_marker,
    is_music_video,
    missing_version_flags,
    violates_version_rules,
)
from tunebridge.core.models import CanonicalItem, MatchReason, MatchResult
from tunebridge.core.orientation import (
    ArtistGuess,
    channel_artist,
    overlaps_artist,
    resolve_orientation,
)
from tunebridge.core.text import is_unintelligible, jaccard, normalize, tokenize

logger = logging.getLogger(__name__)

POOL_INITIAL = 5
POOL_ESCALATED = 10
SHORT_CLIP_MS = 60_000
MUSIC_CATEGORY_ID = "10"
RECENT_UPLOAD = timedelta(days=30)

# source -> target weights
W_CHANNEL_TRUST = 2.0
W_TITLE = 1.6
W_ARTIST = 1.0
W_DURATION = 1.4
W_CONTENT_TYPE = 0.6
W_POPULARITY = 0.4
CATEGORY_BONUS = 0.3

# target -> source weights
W_REV_TITLE = 1.6
W_REV_DURATION = 1.6
W_REV_ARTIST = 1.0
W_REV_POPULARITY = 0.6
MUSIC_VIDEO_BONUS = 0.3

TRUST_EXACT = 1.0
TRUST_TOPIC = 0.85
TRUST_VEVO = 0.7
TRUST_CONTAINS = 0.5


class SearchableCatalog(Protocol):
    def search(self, query: str, limit: int) -> list[CanonicalItem]: ...


# ----------------------------
# Shared helpers
# ----------------------------


def duration_within(source_ms: Optional[int], candidate_ms: Optional[int],
                    slack_ms: int) -> bool:
    """Unknown source duration passes; unknown candidate duration fails."""
    if not source_ms:
        return True
    if not candidate_ms:
        return False
    return abs(candidate_ms - source_ms) <= slack_ms


def duration_closeness(source_ms: Optional[int], candidate_ms: Optional[int],
                       slack_ms: int) -> float:
    """1.0 for identical durations, falling linearly to 0 at the slack edge."""
    if not source_ms or not candidate_ms:
        return 0.0
    delta = abs(candidate_ms - source_ms)
    if slack_ms <= 0:
        return 1.0 if delta == 0 else 0.0
    return max(0.0, 1.0 - delta / slack_ms)


def _contains_phrase(haystack: str, needle: str) -> bool:
    h, n = normalize(haystack), normalize(needle)
    return bool(n) and f" {n} " in f" {h} "


def channel_trust(artist: str, channel_title: str) -> float:
    """
    How strongly a channel name vouches for an artist.

    exact name > "Artist - Topic" > artist VEVO > channel contains artist > none
    """
    artist_n = normalize(artist)
    channel_n = normalize(channel_title)
    if not artist_n or not channel_n:
        return 0.0

    if channel_n == artist_n:
        return TRUST_EXACT

    raw = (channel_title or "").strip()
    derived = channel_artist(raw)
    if derived is not None and normalize(derived).replace(" ", "") == artist_n.replace(" ", ""):
        return TRUST_TOPIC if raw.lower().endswith("topic") else TRUST_VEVO

    if _contains_phrase(channel_title, artist):
        return TRUST_CONTAINS
    return 0.0


def popularity_score(candidate: CanonicalItem, now: datetime) -> float:
    """Log-scaled view count in [0, 1], halved for uploads under 30 days old."""
    views = candidate.view_count or 0
    if views <= 0:
        return 0.0
    score = min(1.0, math.log10(views + 1) / 9.0)
    if candidate.published_at is not None and now - candidate.published_at < RECENT_UPLOAD:
        score /= 2.0
    return score


def _escalate(pool: Sequence[CanonicalItem],
              accept: Callable[[CanonicalItem], bool]) -> tuple[list[CanonicalItem], int, bool]:
    """Survivors of the first pool slice that yields any, plus (inspected, escalated)."""
    window: Sequence[CanonicalItem] = ()
    for escalated, limit in ((False, POOL_INITIAL), (True, POOL_ESCALATED)):
        window = pool[:limit]
        passing = [c for c in window if accept(c)]
        if passing:
            return passing, len(window), escalated
    return [], len(window), True


def _pick_highest(scored: list[tuple[CanonicalItem, float]]) -> Optional[tuple[CanonicalItem, float]]:
    """Highest score; earlier entries win ties."""
    best = None
    for cand, score in scored:
        if math.isnan(score):
            continue
        if best is None or score > best[1]:
            best = (cand, score)
    return best


# ----------------------------
# Source -> target (structured track to free-text video)
# ----------------------------


def artist_aligned(artist: str, candidate: CanonicalItem) -> bool:
    if not normalize(artist):
        return False
    if _contains_phrase(candidate.title, artist):
        return True
    return channel_trust(artist, candidate.channel_title) > 0


def target_rejection(item: CanonicalItem, candidate: CanonicalItem, slack_ms: int) -> Optional[str]:
    """Why a candidate fails the hard filters, or None if it passes."""
    if not duration_within(item.duration_ms, candidate.duration_ms, slack_ms):
        return "duration"
    if (item.duration_ms or 0) > SHORT_CLIP_MS and (candidate.duration_ms or 0) < SHORT_CLIP_MS:
        return "short_clip"
    marker = violates_version_rules(item.title, candidate.title, candidate.description)
    if marker:
        return f"version:{marker}"
    if not artist_aligned(item.primary_artist, candidate):
        return "artist"
    candidate_tokens = set(tokenize(candidate.title))
    if any(tok not in candidate_tokens for tok in tokenize(item.title)):
        return "title_coverage"
    return None


def score_target_candidate(item: CanonicalItem, candidate: CanonicalItem,
                           slack_ms: int, now: datetime) -> float:
    score = W_CHANNEL_TRUST * channel_trust(item.primary_artist, candidate.channel_title)
    score += W_TITLE * jaccard(item.title, candidate.title)
    score += W_ARTIST * (1.0 if artist_aligned(item.primary_artist, candidate) else 0.0)
    score += W_DURATION * duration_closeness(item.duration_ms, candidate.duration_ms, slack_ms)
    score += W_CONTENT_TYPE * (1.0 if content_type_bonus(candidate.title, candidate.channel_title) else 0.0)
    score += W_POPULARITY * popularity_score(candidate, now)
    if candidate.category_id == MUSIC_CATEGORY_ID:
        score += CATEGORY_BONUS
    return score


def match_to_target(item: CanonicalItem, pool: Sequence[CanonicalItem],
                    slack_sec: int = 7, now: Optional[datetime] = None) -> MatchResult:
    """Pick the best target-catalog candidate for a source-catalog track."""
    if not pool:
        return MatchResult.failure(MatchReason.NO_SEARCH_RESULTS)

    now = now or datetime.now(timezone.utc)
    slack_ms = slack_sec * 1000

    def accept(candidate: CanonicalItem) -> bool:
        why = target_rejection(item, candidate, slack_ms)
        if why:
            logger.debug(f"Reject {candidate.item_id} '{candidate.title}': {why}")
        return why is None

    passing, inspected, escalated = _escalate(pool, accept)
    if not passing:
        return MatchResult.failure(MatchReason.NO_CANDIDATE_PASSED_FILTERS, inspected, escalated)

    best = _pick_highest([(c, score_target_candidate(item, c, slack_ms, now)) for c in passing])
    if best is None:
        return MatchResult.failure(MatchReason.NO_BEST, inspected, escalated)

    return MatchResult(best=best[0], reason=MatchReason.OK, inspected_count=inspected,
                       escalated=escalated, score=round(best[1], 6))


def find_target_match(item: CanonicalItem, catalog: SearchableCatalog, slack_sec: int = 7,
                      now: Optional[datetime] = None) -> MatchResult:
    if is_unintelligible(item.primary_artist, item.title):
        return MatchResult.failure(MatchReason.UNINTELLIGIBLE_QUERY)

    query = f"{item.primary_artist} {item.title}".strip()
    pool = catalog.search(query, POOL_ESCALATED) or []
    return match_to_target(item, pool, slack_sec, now)


# ----------------------------
# Target -> source (free-text video to structured track)
# ----------------------------


def source_rejection(item: CanonicalItem, candidate: CanonicalItem, guess: ArtistGuess,
                     slack_ms: int) -> Optional[str]:
    """Why a candidate fails the reverse-direction hard filters, or None."""
    if not duration_within(item.duration_ms, candidate.duration_ms, slack_ms):
        return "duration"
    missing = missing_version_flags(normalize(item.title), candidate.title)
    if missing:
        return f"version:{missing[0]}"
    marker = disallowed_marker(item.title, candidate.title)
    if marker:
        return f"version:{marker}"
    if guess.trusted and guess.artist and not is_music_video(candidate.title):
        if not overlaps_artist(candidate.artist_text, guess.artist):
            return "artist"
    candidate_tokens = set(tokenize(candidate.title))
    if any(tok not in candidate_tokens for tok in tokenize(guess.title_core)):
        return "title_coverage"
    return None


def score_source_candidate(item: CanonicalItem, candidate: CanonicalItem, guess: ArtistGuess,
                           slack_ms: int) -> float:
    mv = is_music_video(candidate.title)
    score = W_REV_TITLE * jaccard(guess.title_core, candidate.title)
    score += W_REV_DURATION * duration_closeness(item.duration_ms, candidate.duration_ms, slack_ms)
    if guess.trusted and guess.artist and not mv and overlaps_artist(candidate.artist_text, guess.artist):
        score += W_REV_ARTIST
    score += W_REV_POPULARITY * ((candidate.popularity or 0) / 100.0)
    if mv:
        score += MUSIC_VIDEO_BONUS
    return score


def _exact_title_pick(item: CanonicalItem, passing: list[CanonicalItem], guess: ArtistGuess,
                      slack_ms: int) -> Optional[tuple[CanonicalItem, float]]:
    core = set(tokenize(guess.title_core))
    exact = [
        c for c in passing
        if not is_music_video(c.title) and set(tokenize(c.title)) == core
    ]
    return _pick_highest([
        (c, duration_closeness(item.duration_ms, c.duration_ms, slack_ms) + (c.popularity or 0) / 200.0)
        for c in exact
    ])


def match_to_source(item: CanonicalItem, pool: Sequence[CanonicalItem], guess: ArtistGuess,
                    slack_sec: int = 7) -> MatchResult:
    """Pick the best source-catalog track for a target-catalog video."""
    if not pool:
        return MatchResult.failure(MatchReason.NO_SEARCH_RESULTS)

    slack_ms = slack_sec * 1000

    def accept(candidate: CanonicalItem) -> bool:
        why = source_rejection(item, candidate, guess, slack_ms)
        if why:
            logger.debug(f"Reject {candidate.item_id} '{candidate.title}': {why}")
        return why is None

    passing, inspected, escalated = _escalate(pool, accept)
    if not passing:
        return MatchResult.failure(MatchReason.NO_CANDIDATE_PASSED_FILTERS, inspected, escalated)

    exact = _exact_title_pick(item, passing, guess, slack_ms)
    if exact is not None:
        return MatchResult(best=exact[0], reason=MatchReason.OK, inspected_count=inspected,
                           escalated=escalated, score=round(exact[1], 6), exact_title=True)

    best = _pick_highest([(c, score_source_candidate(item, c, guess, slack_ms)) for c in passing])
    if best is None:
        return MatchResult.failure(MatchReason.NO_BEST, inspected, escalated)

    return MatchResult(best=best[0], reason=MatchReason.OK, inspected_count=inspected,
                       escalated=escalated, score=round(best[1], 6))


def source_queries(guess: ArtistGuess) -> list[str]:
    queries = []
    if guess.trusted and guess.artist:
        queries.append(f"{guess.artist} {guess.title_core}".strip())
    queries.append(guess.title_core)
    return queries


def find_source_match(item: CanonicalItem, catalog: SearchableCatalog,
                      slack_sec: int = 7) -> MatchResult:
    guess = resolve_orientation(item.title, item.channel_title)
    if is_unintelligible(guess.title_core):
        return MatchResult.failure(MatchReason.UNINTELLIGIBLE_QUERY)

    logger.debug(
        f"Orientation for '{item.title}': artist={guess.artist!r} core={guess.title_core!r} "
        f"trusted={guess.trusted} rule={guess.rule}"
    )

    pool: list[CanonicalItem] = []
    seen: set[str] = set()
    for query in source_queries(guess):
        for candidate in catalog.search(query, POOL_ESCALATED) or []:
            if candidate.item_id not in seen:
                seen.add(candidate.item_id)
                pool.append(candidate)

    return match_to_source(item, pool, guess, slack_sec)
