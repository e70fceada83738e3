"""
Text normalization shared by the matchers.

Pure functions only: no I/O, no state. Everything here must stay cheap
and deterministic because it runs once per candidate per attempt.
"""

import re

_OFFICIAL_BRACKET_RE = re.compile(r"\s*\(official[^)]*\)|\s*\[official[^\]]*\]")
_MARKER_RE = re.compile(
    r"\b(?:official video|official audio|lyrics?|mv|hd|4k|remaster(?:ed)?)\b"
)
# Unicode-aware: \w covers letters/digits in every script, minus the underscore.
_NON_ALNUM_RE = re.compile(r"[^\w\s]|_")
_WS_RE = re.compile(r"\s+")

STOPWORDS = frozenset({
    "the", "a", "an", "and", "of", "to", "in", "on", "for", "with", "by",
    "feat", "ft", "vs", "x", "remix", "edit",
})
MIN_TOKEN_LEN = 3


def flatten(text: str | None) -> str:
    """Lowercase, punctuation to spaces, collapsed whitespace. Keeps marker words."""
    t = (text or "").lower()
    t = _NON_ALNUM_RE.sub(" ", t)
    return _WS_RE.sub(" ", t).strip()


def normalize(text: str | None) -> str:
    """
    Normalize a title for comparison.

    - Lowercases
    - Drops "(official ...)" / "[official ...]" groups
    - Drops marker words (official video/audio, lyrics, mv, hd, 4k, remaster)
    - Replaces anything that is not a letter, digit or space with a space
    - Collapses whitespace

    >>> normalize("Song Name (Official Music Video) [HD]")
    'song name'
    """
    t = (text or "").lower()
    t = _OFFICIAL_BRACKET_RE.sub(" ", t)
    t = _MARKER_RE.sub(" ", t)
    t = _NON_ALNUM_RE.sub(" ", t)
    return _WS_RE.sub(" ", t).strip()


def tokenize(text: str | None) -> list[str]:
    """Normalized words, minus short words and stopwords. Order is preserved."""
    return [
        tok for tok in normalize(text).split(" ")
        if tok and len(tok) >= MIN_TOKEN_LEN and tok not in STOPWORDS
    ]


def jaccard(a: str | None, b: str | None) -> float:
    """Token-set Jaccard similarity. Two token-less strings count as equal."""
    sa = set(tokenize(a))
    sb = set(tokenize(b))
    if not sa and not sb:
        return 1.0
    union = len(sa | sb)
    if union == 0:
        return 0.0
    return len(sa & sb) / union


def is_unintelligible(*parts: str | None) -> bool:
    """
    True when the joined parts carry nothing worth searching for.

    A string is intelligible if at least one token survives tokenization,
    or if the normalized text still holds two or more letters/digits
    (short names like "U2" have no tokens but are real queries).
    """
    joined = " ".join(p for p in parts if p).strip()
    if not joined:
        return True
    if tokenize(joined):
        return False
    alnum = sum(1 for ch in normalize(joined) if ch.isalnum())
    return alnum < 2
