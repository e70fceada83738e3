"""Per-playlist sync cache: last sync time, seen source IDs, source->target map."""

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from tunebridge.core.models import DIRECTIONS, CachePersistError, parse_timestamp

logger = logging.getLogger(__name__)

CACHE_VERSION = 1
_PLAYLIST_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class SyncCache:
    last_sync: Optional[datetime] = None
    seen_ids: set[str] = field(default_factory=set)
    mapping: dict[str, str] = field(default_factory=dict)

    @property
    def first_run(self) -> bool:
        return self.last_sync is None

    def to_document(self) -> dict:
        return {
            "version": CACHE_VERSION,
            "lastSyncTimestamp": self.last_sync.isoformat() if self.last_sync else None,
            "seenIds": sorted(self.seen_ids),
            "map": dict(sorted(self.mapping.items())),
        }

    @classmethod
    def from_document(cls, data: dict) -> "SyncCache":
        # Documents from before versioning used lastSync / seenTrackIds.
        last_sync = data.get("lastSyncTimestamp", data.get("lastSync"))
        seen = data.get("seenIds", data.get("seenTrackIds")) or []
        mapping = data.get("map") or {}
        if not isinstance(seen, list) or not isinstance(mapping, dict):
            raise ValueError("seenIds must be a list and map an object")
        return cls(
            last_sync=parse_timestamp(last_sync),
            seen_ids={str(s) for s in seen},
            mapping={str(k): str(v) for k, v in mapping.items() if v},
        )


class SyncCacheStore:
    """One JSON document per (direction, source playlist), replaced atomically."""

    def __init__(self, cache_dir: Path):
        self._dir = Path(cache_dir)

    def path(self, direction: str, playlist_id: str) -> Path:
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction}")
        if not _PLAYLIST_ID_RE.match(playlist_id or ""):
            raise ValueError(
                f"Invalid playlist_id: {playlist_id}. "
                f"Must contain only alphanumeric characters, hyphens, and underscores."
            )
        return self._dir / f"{direction}_{playlist_id}.json"

    def load(self, direction: str, playlist_id: str) -> SyncCache:
        path = self.path(direction, playlist_id)
        if not path.exists():
            return SyncCache()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("cache document is not an object")
            cache = SyncCache.from_document(data)
            logger.debug(
                f"Loaded cache {path.name}: {len(cache.mapping)} mappings, "
                f"{len(cache.seen_ids)} seen"
            )
            return cache
        except Exception as e:
            logger.warning(f"Cache load failed for {path.name}, starting fresh: {e}")
            return SyncCache()

    def save(self, direction: str, playlist_id: str, cache: SyncCache) -> None:
        path = self.path(direction, playlist_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".cache_", suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(cache.to_document(), f, indent=2)
                os.replace(temp_path, path)
            except Exception:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except Exception as e:
            raise CachePersistError(f"Cache save failed for {path}: {e}") from e
