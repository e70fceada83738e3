"""
Version and content classification.

A source title is the contract: a candidate may not add a variant
qualifier (live, remix, acoustic, ...) the source does not carry, and
may never be one of the audio-altering uploads in DISALLOWED_PATTERNS
unless the source itself is.
"""

import re
from typing import Optional

from tunebridge.core.text import flatten

VERSION_PATTERNS = {
    "live": re.compile(r"\blive\b"),
    "remix": re.compile(r"\bremix(?:ed)?\b"),
    "acoustic": re.compile(r"\bacoustic\b"),
    "lyric": re.compile(r"\blyrics?\b"),
    "remaster": re.compile(r"\bremaster(?:ed)?\b"),
}

QUALIFIER_PATTERNS = {
    **VERSION_PATTERNS,
    "clean": re.compile(r"\bclean\b"),
    "explicit": re.compile(r"\bexplicit\b"),
    "radio edit": re.compile(r"\bradio edit\b"),
}

DISALLOWED_PATTERNS = {
    "cover": re.compile(r"\bcovers?\b"),
    "karaoke": re.compile(r"\bkaraoke\b"),
    "sped up": re.compile(r"\bsped up\b"),
    "nightcore": re.compile(r"\bnightcore\b"),
    "slowed": re.compile(r"\bslowed\b"),
    "8d": re.compile(r"\b8d\b"),
    "loop": re.compile(r"\bloop(?:ed)?\b"),
    "extended": re.compile(r"\bextended\b"),
    "reaction": re.compile(r"\breaction\b"),
    "compilation": re.compile(r"\bcompilation\b"),
    "full album": re.compile(r"\bfull album\b"),
    "tribute": re.compile(r"\btribute\b"),
    "fan-made": re.compile(r"\bfan ?made\b"),
    "reverb": re.compile(r"\breverb\b"),
    "bass-boosted": re.compile(r"\bbass ?boost(?:ed)?\b"),
    "mix": re.compile(r"\bmix\b"),
    "edit": re.compile(r"\bedit\b"),
}

_MUSIC_VIDEO_RE = re.compile(r"\b(?:music video|official video|video edit)\b")
_OFFICIAL_CONTENT_RE = re.compile(r"\bofficial (?:audio|video|music video)\b")


def version_flags(text: str | None) -> dict[str, bool]:
    """Whole-word variant markers present in text."""
    flat = flatten(text)
    return {name: bool(p.search(flat)) for name, p in VERSION_PATTERNS.items()}


def violates_version_rules(source_title: str | None, candidate_title: str | None,
                           candidate_description: str | None = "") -> Optional[str]:
    """
    Return the first marker the candidate carries that the source does not.

    Qualifiers and disallowed content are both checked against the
    candidate's title plus description. None means no violation.
    """
    source = flatten(source_title)
    candidate = flatten(f"{candidate_title or ''} {candidate_description or ''}")

    for name, pattern in QUALIFIER_PATTERNS.items():
        if pattern.search(candidate) and not pattern.search(source):
            return name
    for name, pattern in DISALLOWED_PATTERNS.items():
        if pattern.search(candidate) and not pattern.search(source):
            return name
    return None


def missing_version_flags(source_text: str | None, candidate_text: str | None) -> list[str]:
    """Variant flags set on source_text that candidate_text does not carry."""
    required = version_flags(source_text)
    present = version_flags(candidate_text)
    return [name for name, on in required.items() if on and not present[name]]


def disallowed_marker(source_text: str | None, candidate_text: str | None) -> Optional[str]:
    """First audio-altering marker in the candidate that the source lacks."""
    source = flatten(source_text)
    candidate = flatten(candidate_text)
    for name, pattern in DISALLOWED_PATTERNS.items():
        if pattern.search(candidate) and not pattern.search(source):
            return name
    return None


def is_music_video(title: str | None) -> bool:
    return bool(_MUSIC_VIDEO_RE.search(flatten(title)))


def content_type_bonus(title: str | None, channel_title: str | None) -> bool:
    """Official audio/video uploads and auto-generated "- Topic" channels."""
    if _OFFICIAL_CONTENT_RE.search(flatten(title)):
        return True
    return (channel_title or "").strip().lower().endswith("- topic")
