"""
Orientation resolution for free-text video titles.

YouTube titles are usually "X - Y" with no telling which side is the
artist. resolve_orientation() runs a short prioritized rule chain:

    channel      the channel identifies the artist ("X - Topic", "XVEVO")
                 and exactly one side overlaps it; the only trusted rule
    marker       exactly one side carries an artist-list marker (&, feat,
                 ft, with, x, comma)
    token_count  the side with fewer words (artist names are short)
    default      left side is the artist

Only a channel-derived guess may hard-block a candidate on artist
mismatch; every other guess is advisory.
"""

import re
from dataclasses import dataclass
from typing import Optional

from tunebridge.core.classify import VERSION_PATTERNS
from tunebridge.core.text import STOPWORDS, flatten, normalize

LEFT = "left"
RIGHT = "right"
NO_DASH = "none"

# A dash needs whitespace on at least one side; en and em dashes always split.
_DASH_SPLIT_RE = re.compile(r"\s+[-–—]\s*|\s*[-–—]\s+|[–—]")
_TOPIC_RE = re.compile(r"^(.*?)\s*-\s*topic$", re.IGNORECASE)
_VEVO_RE = re.compile(r"\s*vevo\s*", re.IGNORECASE)
_ARTIST_MARKER_RE = re.compile(r"&|,|\b(?:feat|ft|with|x)\b", re.IGNORECASE)
_BRACKET_RE = re.compile(r"[\(\[]([^\)\]]*)[\)\]]")
_NOISE_RE = re.compile(
    r"\b(?:official|lyrics?|audio|video|visuali[sz]er|hd|4k|mv)\b"
)
_KEEP_IN_CORE = ("live", "remix", "acoustic")


@dataclass(frozen=True)
class ArtistGuess:
    artist: Optional[str]
    title_core: str
    trusted: bool
    orientation: str
    rule: str


def channel_artist(channel_title: str | None) -> Optional[str]:
    """Artist named by an "X - Topic" or VEVO channel, else None."""
    channel = (channel_title or "").strip()
    if not channel or "various artists" in channel.lower():
        return None

    m = _TOPIC_RE.match(channel)
    if m:
        return m.group(1).strip() or None
    if "vevo" in channel.lower():
        return _VEVO_RE.sub(" ", channel).strip() or None
    return None


def _words(text: str) -> set[str]:
    return {w for w in normalize(text).split() if w not in STOPWORDS}


def _compact(text: str) -> str:
    return normalize(text).replace(" ", "")


def overlaps_artist(side: str, artist: str) -> bool:
    """Shared word with the artist, or the same name once spaces are ignored."""
    if not side or not artist:
        return False
    if _words(side) & _words(artist):
        return True
    compact = _compact(artist)
    return bool(compact) and _compact(side) == compact


def strip_upload_noise(text: str) -> str:
    """Drop bracket groups like "(Official Video)" but keep "(Live)"."""
    def _replace(match: re.Match) -> str:
        inner = flatten(match.group(1))
        if any(VERSION_PATTERNS[k].search(inner) for k in _KEEP_IN_CORE):
            return match.group(0)
        if _NOISE_RE.search(inner):
            return " "
        return match.group(0)

    return re.sub(r"\s+", " ", _BRACKET_RE.sub(_replace, text or "")).strip()


def _split(title: str) -> Optional[tuple[str, str]]:
    parts = _DASH_SPLIT_RE.split((title or "").strip(), maxsplit=1)
    if len(parts) != 2:
        return None
    left, right = parts[0].strip(), parts[1].strip()
    if not left or not right:
        return None
    return left, right


def _guess(left: str, right: str, side: str, trusted: bool, rule: str) -> ArtistGuess:
    artist, core = (left, right) if side == LEFT else (right, left)
    return ArtistGuess(artist=artist, title_core=strip_upload_noise(core),
                       trusted=trusted, orientation=side, rule=rule)


def resolve_orientation(title: str | None, channel_title: str | None) -> ArtistGuess:
    ch_artist = channel_artist(channel_title)
    parts = _split(title or "")

    if parts is None:
        return ArtistGuess(artist=ch_artist, title_core=strip_upload_noise(title or ""),
                           trusted=ch_artist is not None, orientation=NO_DASH,
                           rule="no_dash")

    left, right = parts

    if ch_artist:
        in_left = overlaps_artist(left, ch_artist)
        in_right = overlaps_artist(right, ch_artist)
        if in_left != in_right:
            return _guess(left, right, LEFT if in_left else RIGHT, True, "channel")

    marked_left = bool(_ARTIST_MARKER_RE.search(left))
    marked_right = bool(_ARTIST_MARKER_RE.search(right))
    if marked_left != marked_right:
        return _guess(left, right, LEFT if marked_left else RIGHT, False, "marker")

    n_left = len(normalize(left).split())
    n_right = len(normalize(right).split())
    if n_left != n_right:
        return _guess(left, right, LEFT if n_left < n_right else RIGHT, False, "token_count")

    return _guess(left, right, LEFT, False, "default")
