"""Shared fixtures: in-memory catalogs standing in for Spotify and YouTube."""

from datetime import datetime, timedelta, timezone

import pytest

from tunebridge.core.cache import SyncCacheStore
from tunebridge.core.models import CanonicalItem, CatalogSearchError

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeCatalog:
    """
    Playlists keyed by id, a search index keyed by exact query string,
    and a log of every insert call in order.
    """

    def __init__(self, playlists=None, search_results=None, items=None):
        self.playlists = {k: list(v) for k, v in (playlists or {}).items()}
        self.search_results = dict(search_results or {})
        self.items = {i.item_id: i for i in (items or [])}
        self.queries = []
        self.inserts = []
        self.fail_inserts = set()
        self.raise_inserts = set()
        self.search_errors = set()

    def fetch_canonical_items(self, playlist_id):
        return list(self.playlists.get(playlist_id, []))

    def search(self, query, limit):
        self.queries.append(query)
        if query in self.search_errors:
            raise CatalogSearchError(f"search failed for {query!r}")
        return list(self.search_results.get(query, []))[:limit]

    def insert(self, playlist_id, item_id):
        self.inserts.append((playlist_id, item_id))
        if item_id in self.raise_inserts:
            raise ConnectionError("network down")
        if item_id in self.fail_inserts:
            return False
        item = self.items.get(item_id) or CanonicalItem(item_id=item_id, title=item_id)
        self.playlists.setdefault(playlist_id, []).append(item)
        return True


def track(item_id, title, artist, seconds=200, added_days=0, **kw):
    """Spotify-shaped item."""
    return CanonicalItem(
        item_id=item_id,
        title=title,
        primary_artist=artist,
        artists=kw.pop("artists", (artist,)),
        duration_ms=seconds * 1000,
        added_at=BASE_TIME + timedelta(days=added_days),
        **kw,
    )


def video(item_id, title, channel, seconds=200, added_days=0, **kw):
    """YouTube-shaped item."""
    return CanonicalItem(
        item_id=item_id,
        title=title,
        channel_title=channel,
        duration_ms=seconds * 1000,
        added_at=BASE_TIME + timedelta(days=added_days) if added_days is not None else None,
        **kw,
    )


@pytest.fixture
def store(tmp_path):
    return SyncCacheStore(tmp_path / "cache")
