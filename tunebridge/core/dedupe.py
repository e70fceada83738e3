"""
Soft-duplicate detection against the current destination playlist.

A previous run (or a human) may already have put the song in the
destination without a cache mapping being recorded. The full matchers
would then either miss it on minor title differences or insert it a
second time, so before any search the source item is compared against
every destination entry with relaxed thresholds.
"""

import logging
from typing import Iterable, Optional

from tunebridge.core.models import SP2YT, CanonicalItem
from tunebridge.core.orientation import resolve_orientation
from tunebridge.core.text import jaccard, normalize, tokenize

logger = logging.getLogger(__name__)

MIN_DURATION_TOLERANCE_MS = 12_000
DURATION_TOLERANCE_RATIO = 0.04
TITLE_JACCARD_THRESHOLD = 0.45


def duration_tolerance_ms(source_ms: int) -> float:
    return max(MIN_DURATION_TOLERANCE_MS, DURATION_TOLERANCE_RATIO * source_ms)


def _loosely_contains(haystack: str, needle: str) -> bool:
    h, n = normalize(haystack), normalize(needle)
    return bool(n) and n in h


def title_without_artists(title: str, names: Iterable[str]) -> str:
    """Normalized title with each artist name removed as a whole phrase."""
    padded = f" {normalize(title)} "
    for name in names:
        n = normalize(name)
        if n:
            padded = padded.replace(f" {n} ", " ")
    return padded.strip()


def _artist_loose(item: CanonicalItem, dest: CanonicalItem, direction: str) -> bool:
    if direction == SP2YT:
        return _loosely_contains(f"{dest.title} {dest.channel_title}", item.primary_artist)
    text = f"{item.title} {item.channel_title}"
    names = [a for a in dest.artists if a] or [dest.primary_artist]
    return any(_loosely_contains(text, name) for name in names)


def find_soft_duplicate(item: CanonicalItem, destination: Iterable[CanonicalItem],
                        direction: str) -> Optional[CanonicalItem]:
    """
    Destination entry that is "clearly the same song" as item, or None.

    Gates: duration within max(12s, 4%), loose artist containment, title
    Jaccard >= 0.45. Video titles are compared with the track's artist
    names removed. The highest Jaccard wins; earlier entries win ties.
    """
    if not item.duration_ms:
        return None

    if direction == SP2YT:
        title = item.title
    else:
        title = resolve_orientation(item.title, item.channel_title).title_core

    tolerance = duration_tolerance_ms(item.duration_ms)
    best: Optional[CanonicalItem] = None
    best_score = -1.0

    for dest in destination:
        if not dest.duration_ms or abs(dest.duration_ms - item.duration_ms) > tolerance:
            continue
        if not _artist_loose(item, dest, direction):
            continue
        score = jaccard(title, dest.title)
        if direction == SP2YT:
            # Uploads usually carry the artist in the title: "Artist - Song".
            core = title_without_artists(dest.title, item.artists or (item.primary_artist,))
            if tokenize(core):
                score = max(score, jaccard(title, core))
        if score >= TITLE_JACCARD_THRESHOLD and score > best_score:
            best, best_score = dest, score

    if best is not None:
        logger.debug(f"Soft duplicate for '{item.title}': {best.item_id} '{best.title}' (jaccard={best_score:.2f})")
    return best
