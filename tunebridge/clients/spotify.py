"""Spotify Web API Client - refresh-token grant, playlist reads, search, append"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

import requests

from tunebridge.core.models import CanonicalItem, CatalogSearchError, parse_timestamp

logger = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1"
TOKEN_URL = "https://accounts.spotify.com/api/token"
PAGE_LIMIT = 100
SEARCH_LIMIT_MAX = 50
REQUEST_TIMEOUT = 30


class SpotifyAuthError(Exception):
    pass


class SpotifyAPIError(Exception):
    pass


class SpotifySchemaError(Exception):
    pass


def track_to_item(track: dict | None, added_at: str | None = None) -> CanonicalItem | None:
    """Build a CanonicalItem from a track object; local files and episodes are dropped."""
    if not track or track.get("type", "track") != "track" or track.get("is_local"):
        return None

    track_id = track.get("id")
    name = track.get("name", "")
    if not track_id or not name:
        return None

    artists = tuple(a.get("name", "") for a in track.get("artists") or [] if a.get("name"))
    return CanonicalItem(
        item_id=track_id,
        title=name,
        primary_artist=artists[0] if artists else "",
        artists=artists,
        duration_ms=track.get("duration_ms"),
        added_at=parse_timestamp(added_at),
        popularity=track.get("popularity"),
        album=(track.get("album") or {}).get("name", ""),
    )


class SpotifyClient:
    def __init__(self, data_dir: Path = Path("."), session: requests.Session | None = None):
        self._client_id = os.environ.get("SPOTIFY_CLIENT_ID")
        self._client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET")
        self._env_refresh = os.environ.get("SPOTIFY_REFRESH_TOKEN")
        self._refresh = self._env_refresh
        if not (self._client_id and self._client_secret and self._refresh):
            raise SpotifyAuthError(
                "Set SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET and SPOTIFY_REFRESH_TOKEN"
            )

        self._token: str | None = None
        self._token_expires: int = 0
        self._session = session or requests.Session()
        self._token_cache = data_dir / ".spotify_token.json"

        if not self._load_cached_token():
            self._refresh_token()

        logger.info("Spotify client initialized")

    def _load_cached_token(self) -> bool:
        try:
            if self._token_cache.exists():
                data = json.loads(self._token_cache.read_text())
                # A rotated refresh token only applies to the env token it replaced.
                if data.get("issued_for") == self._env_refresh and data.get("refresh_token"):
                    self._refresh = data["refresh_token"]
                expires = data.get("expires_at", 0)
                if time.time() * 1000 < (expires - 300000):
                    self._token = data["access_token"]
                    self._token_expires = expires
                    logger.debug("Loaded cached Spotify token")
                    return True
        except Exception as e:
            logger.debug(f"Cache load failed: {e}")
        return False

    def _save_token(self) -> None:
        try:
            self._token_cache.parent.mkdir(parents=True, exist_ok=True)
            self._token_cache.write_text(json.dumps({
                "access_token": self._token,
                "expires_at": self._token_expires,
                "refresh_token": self._refresh,
                "issued_for": self._env_refresh,
            }))
            os.chmod(self._token_cache, 0o600)
        except Exception as e:
            logger.warning(f"Failed to cache token: {e}")

    def _refresh_token(self) -> None:
        logger.info("Refreshing Spotify access token...")
        try:
            response = self._session.post(
                TOKEN_URL,
                data={"grant_type": "refresh_token", "refresh_token": self._refresh},
                auth=(self._client_id, self._client_secret),
                timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise SpotifyAuthError(f"Token refresh failed: {e}")

        if response.status_code != 200:
            raise SpotifyAuthError(
                f"Token refresh failed ({response.status_code}): {response.text[:200]}"
            )

        data = response.json()
        if "access_token" not in data:
            raise SpotifyAuthError("Token response missing 'access_token'")

        self._token = data["access_token"]
        self._token_expires = int(time.time() * 1000) + int(data.get("expires_in", 3600)) * 1000
        # Spotify may rotate the refresh token.
        self._refresh = data.get("refresh_token", self._refresh)
        self._save_token()
        logger.info("Spotify token obtained")

    def _ensure_token(self) -> None:
        if time.time() * 1000 >= (self._token_expires - 300000):
            self._refresh_token()

    def _request(self, method: str, url: str, max_retries: int = 3, **kwargs) -> dict:
        if not url.startswith("http"):
            url = f"{API_BASE}{url}"

        refreshed = False
        for attempt in range(max_retries):
            self._ensure_token()
            try:
                response = self._session.request(
                    method, url,
                    headers={"Authorization": f"Bearer {self._token}"},
                    timeout=REQUEST_TIMEOUT,
                    **kwargs
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt < max_retries - 1:
                    wait = 2 ** attempt
                    logger.warning(f"Network error on {method} {url}, retrying in {wait}s...")
                    time.sleep(wait)
                    continue
                raise SpotifyAPIError(f"Network error on {method} {url}: {e}")

            status = response.status_code
            if status == 401 and not refreshed:
                refreshed = True
                self._refresh_token()
                continue
            if status == 429 and attempt < max_retries - 1:
                wait = int(response.headers.get("Retry-After", "1") or 1)
                logger.warning(f"Rate limited on {method} {url}, waiting {wait}s...")
                time.sleep(wait)
                continue
            if status >= 500 and attempt < max_retries - 1:
                wait = 2 ** attempt
                logger.warning(f"Server error {status} on {method} {url}, retrying in {wait}s...")
                time.sleep(wait)
                continue
            if status >= 400:
                logger.error(f"Spotify error {status}: {response.text[:200]}")
                raise SpotifyAPIError(f"{method} {url} failed with {status}")

            return response.json() if response.content else {}

        raise SpotifyAPIError(f"{method} {url} failed after {max_retries} attempts")

    def fetch_canonical_items(self, playlist_id: str) -> list[CanonicalItem] | None:
        items = []
        url: str | None = f"/playlists/{playlist_id}/tracks"
        params: dict[str, Any] | None = {"limit": PAGE_LIMIT, "offset": 0}

        try:
            while url:
                page = self._request("GET", url, params=params)
                if "items" not in page:
                    raise SpotifySchemaError("Response missing 'items'")

                for entry in page["items"]:
                    item = track_to_item(entry.get("track"), entry.get("added_at"))
                    if item:
                        items.append(item)

                # "next" already carries offset/limit
                url, params = page.get("next"), None
                if url:
                    time.sleep(0.1)

            logger.info(f"Retrieved {len(items)} tracks from Spotify")
            return items

        except (SpotifyAuthError, SpotifySchemaError):
            raise
        except Exception as e:
            logger.error(f"Failed to fetch playlist: {e}")
            return None

    def search(self, query: str, limit: int) -> list[CanonicalItem]:
        try:
            data = self._request("GET", "/search", params={
                "q": query,
                "type": "track",
                "limit": max(1, min(limit, SEARCH_LIMIT_MAX)),
            })
        except SpotifyAuthError:
            raise
        except Exception as e:
            logger.error(f"Search failed for '{query}': {e}")
            raise CatalogSearchError(f"Spotify search failed for '{query}': {e}") from e

        tracks = (data.get("tracks") or {}).get("items") or []
        return [item for item in (track_to_item(t) for t in tracks) if item]

    def insert(self, playlist_id: str, item_id: str) -> bool:
        """Append track to playlist. Returns True on success."""
        try:
            self._request("POST", f"/playlists/{playlist_id}/tracks",
                          json={"uris": [f"spotify:track:{item_id}"]})
            logger.debug(f"Inserted {item_id} into {playlist_id}")
            return True
        except SpotifyAuthError:
            raise
        except Exception as e:
            logger.error(f"Failed to add {item_id}: {e}")
            return False

    def current_user(self) -> str:
        """Display name (or id) of the account the refresh token belongs to."""
        me = self._request("GET", "/me")
        return me.get("display_name") or me.get("id", "")

    def fetch_sample(self, playlist_id: str, limit: int = 5) -> list[CanonicalItem]:
        """First `limit` playlist entries. Errors propagate."""
        page = self._request("GET", f"/playlists/{playlist_id}/tracks",
                             params={"limit": limit, "offset": 0})
        if "items" not in page:
            raise SpotifySchemaError("Response missing 'items'")
        items = (track_to_item(e.get("track"), e.get("added_at")) for e in page["items"])
        return [i for i in items if i]
