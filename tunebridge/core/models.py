"""Data models for sync operations."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

SP2YT = "sp2yt"
YT2SP = "yt2sp"
DIRECTIONS = (SP2YT, YT2SP)


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 string to an aware datetime (UTC assumed when naive)."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CachePersistError(Exception):
    """Raised when the sync cache cannot be written back to disk."""
    pass


class CatalogSearchError(Exception):
    """A catalog search failed, as opposed to returning no results."""
    pass


@dataclass(frozen=True)
class CanonicalItem:
    """A playlist entry or search hit, independent of its catalog's API shape."""
    item_id: str
    title: str
    primary_artist: str = ""
    channel_title: str = ""
    artists: tuple = ()
    duration_ms: Optional[int] = None
    added_at: Optional[datetime] = None
    popularity: Optional[int] = None
    view_count: Optional[int] = None
    category_id: Optional[str] = None
    published_at: Optional[datetime] = None
    description: str = ""
    album: str = ""

    @property
    def artist_text(self) -> str:
        """All credited artist names, joined."""
        names = [a for a in self.artists if a] or [self.primary_artist]
        return " ".join(n for n in names if n)


class MatchReason(str, Enum):
    OK = "ok"
    NO_SEARCH_RESULTS = "no_search_results"
    NO_CANDIDATE_PASSED_FILTERS = "no_candidate_passed_filters"
    NO_BEST = "no_best"
    UNINTELLIGIBLE_QUERY = "unintelligible_query"
    SEARCH_FAILED = "search_failed"


@dataclass
class MatchResult:
    """Outcome of one match attempt. Never persisted."""
    best: Optional[CanonicalItem]
    reason: MatchReason
    inspected_count: int = 0
    escalated: bool = False
    score: Optional[float] = None
    exact_title: bool = False

    @property
    def matched(self) -> bool:
        return self.best is not None and self.reason is MatchReason.OK

    @classmethod
    def failure(cls, reason: MatchReason, inspected: int = 0,
                escalated: bool = False) -> "MatchResult":
        return cls(best=None, reason=reason, inspected_count=inspected,
                   escalated=escalated)


class PlanAction(str, Enum):
    ADD = "add"
    MAP_ONLY = "map-only"
    SKIP = "skip"


@dataclass
class PlanEntry:
    """A single planned action for one source item."""
    source: CanonicalItem
    action: PlanAction
    target_id: str = ""
    target_title: str = ""
    reason: str = ""
    score: Optional[float] = None


@dataclass
class SyncOptions:
    duration_slack_sec: int = 7
    window: int = 10
    dry_run: bool = False
    verbose: bool = False


@dataclass
class SyncResult:
    """Result of one sync leg."""
    success: bool
    direction: str
    items_added: int
    items_mapped: int
    items_skipped: int
    errors: List[str]
    source_count: int
    target_count: int
    duration: float
    already_mapped: int = 0
    dry_run: bool = False
    plan: List[PlanEntry] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, direction: str = "") -> "SyncResult":
        """Create a failure result with single error."""
        return cls(
            success=False,
            direction=direction,
            items_added=0,
            items_mapped=0,
            items_skipped=0,
            errors=[error],
            source_count=0,
            target_count=0,
            duration=0.0
        )
