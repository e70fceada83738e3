"""
YouTube Data API v3 Client

Handles OAuth authentication and playlist/search operations, resolving
every video to a CanonicalItem. Includes retry logic for rate limiting
and transient errors.

Quota costs:
- search.list: 100 units
- videos.list: 1 unit per 50 ids
- playlistItems.list: 1 unit
- playlistItems.insert: 50 units
"""

import dataclasses
import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Iterable, TypeVar

import isodate
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from tunebridge.core.models import CanonicalItem, CatalogSearchError, parse_timestamp

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ["https://www.googleapis.com/auth/youtube"]
BATCH_SIZE = 50

T = TypeVar('T')


class YouTubeAuthError(Exception):
    """YouTube authentication failed."""
    pass


class YouTubeAPIError(Exception):
    """YouTube API operation failed."""
    pass


class YouTubeQuotaExceededError(Exception):
    """YouTube API quota exceeded."""
    pass


def _load_client_credentials(data_dir: Path) -> tuple[str, str]:
    """Load OAuth client credentials from env vars or client_secrets.json."""
    client_id = os.environ.get("GOOGLE_CLIENT_ID")
    client_secret = os.environ.get("GOOGLE_CLIENT_SECRET")

    if client_id and client_secret:
        return client_id, client_secret

    secrets_file = data_dir / "client_secrets.json"
    if secrets_file.exists():
        try:
            secrets = json.loads(secrets_file.read_text())
            creds = secrets.get("installed") or secrets.get("web")
            if creds:
                return creds["client_id"], creds["client_secret"]
        except Exception as e:
            logger.warning(f"Failed to parse client_secrets.json: {e}")

    raise YouTubeAuthError(
        "OAuth credentials not found. Set GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET "
        "or provide client_secrets.json"
    )


def duration_ms(iso_duration: str | None) -> int | None:
    """ISO-8601 duration ("PT3M25S") to milliseconds."""
    if not iso_duration:
        return None
    try:
        return int(isodate.parse_duration(iso_duration).total_seconds() * 1000)
    except (isodate.ISO8601Error, ValueError, TypeError):
        return None


def video_to_item(video: dict) -> CanonicalItem | None:
    """Build a CanonicalItem from a videos.list resource."""
    video_id = video.get("id")
    if not isinstance(video_id, str) or not video_id:
        return None

    snippet = video.get("snippet") or {}
    content = video.get("contentDetails") or {}
    stats = video.get("statistics") or {}

    views = stats.get("viewCount")
    try:
        view_count = int(views) if views is not None else None
    except (TypeError, ValueError):
        view_count = None

    return CanonicalItem(
        item_id=video_id,
        title=snippet.get("title", ""),
        channel_title=snippet.get("channelTitle", ""),
        duration_ms=duration_ms(content.get("duration")),
        view_count=view_count,
        category_id=snippet.get("categoryId"),
        published_at=parse_timestamp(snippet.get("publishedAt")),
        description=snippet.get("description", ""),
    )


class YouTubeClient:
    """YouTube Data API client with retry logic."""

    def __init__(self, refresh_token: str, data_dir: Path = Path(".")):
        try:
            client_id, client_secret = _load_client_credentials(data_dir)

            credentials = Credentials(
                token=None,
                refresh_token=refresh_token,
                token_uri=TOKEN_URI,
                client_id=client_id,
                client_secret=client_secret,
                scopes=SCOPES
            )

            self._service = build("youtube", "v3", credentials=credentials,
                                  cache_discovery=False)
            logger.info("YouTube client initialized")

        except YouTubeAuthError:
            raise
        except Exception as e:
            raise YouTubeAuthError(f"Failed to authenticate: {e}")

    def _retry(self, operation: Callable[[], T], name: str, max_retries: int = 3) -> T:
        """Execute operation with retry logic for transient errors."""
        for attempt in range(max_retries):
            try:
                return operation()
            except HttpError as e:
                status = e.resp.status if e.resp else 0
                error_str = str(e)

                if status == 403 and "quotaExceeded" in error_str:
                    raise YouTubeQuotaExceededError(f"Quota exceeded: {e}")

                # Rate limit - wait and retry once
                if status == 403 and attempt == 0:
                    logger.warning(f"Rate limited on {name}, waiting 60s...")
                    time.sleep(60)
                    continue

                if (status >= 500 or status == 409) and attempt < max_retries - 1:
                    wait = 2 ** attempt
                    logger.warning(f"Server error {status} on {name}, retrying in {wait}s...")
                    time.sleep(wait)
                    continue

                raise YouTubeAPIError(f"API error on {name}: {e}")

            except (ConnectionError, TimeoutError, OSError) as e:
                if attempt < max_retries - 1:
                    wait = 2 ** attempt
                    logger.warning(f"Network error on {name}, retrying in {wait}s...")
                    time.sleep(wait)
                    continue
                raise YouTubeAPIError(f"Network error on {name}: {e}")

        raise YouTubeAPIError(f"{name} failed after {max_retries} attempts")

    def _videos(self, video_ids: Iterable[str]) -> dict[str, CanonicalItem]:
        """Hydrate video ids through videos.list, 50 per call."""
        ids = [v for v in dict.fromkeys(video_ids) if v]
        out: dict[str, CanonicalItem] = {}

        for i in range(0, len(ids), BATCH_SIZE):
            chunk = ids[i:i + BATCH_SIZE]

            def do_list():
                return self._service.videos().list(
                    part="snippet,contentDetails,statistics",
                    id=",".join(chunk),
                    maxResults=BATCH_SIZE
                ).execute()

            response = self._retry(do_list, f"videos.list ({len(chunk)} ids)")
            for video in response.get("items", []):
                item = video_to_item(video)
                if item:
                    out[item.item_id] = item
        return out

    def search(self, query: str, limit: int) -> list[CanonicalItem]:
        """Search videos; results keep the API's ranking order. Raises CatalogSearchError."""
        def do_search():
            return self._service.search().list(
                part="snippet",
                q=query,
                type="video",
                maxResults=limit
            ).execute()

        try:
            response = self._retry(do_search, f"search '{query}'")
            video_ids = [
                (item.get("id") or {}).get("videoId")
                for item in response.get("items", [])
            ]
            video_ids = [v for v in video_ids if v]
            if not video_ids:
                logger.debug(f"No results for: {query}")
                return []

            by_id = self._videos(video_ids)
            time.sleep(0.5)
            return [by_id[v] for v in video_ids if v in by_id]

        except YouTubeQuotaExceededError:
            raise
        except Exception as e:
            logger.error(f"Search failed for '{query}': {e}")
            raise CatalogSearchError(f"YouTube search failed for '{query}': {e}") from e

    def fetch_canonical_items(self, playlist_id: str) -> list[CanonicalItem] | None:
        """Get all playlist entries, with added_at taken from the playlist item."""
        entries: list[tuple[str, str | None]] = []
        page_token = None

        try:
            while True:
                def do_list():
                    return self._service.playlistItems().list(
                        part="snippet,contentDetails",
                        playlistId=playlist_id,
                        maxResults=BATCH_SIZE,
                        pageToken=page_token
                    ).execute()

                response = self._retry(do_list, f"list playlist {playlist_id}")

                for item in response.get("items", []):
                    video_id = (item.get("contentDetails") or {}).get("videoId")
                    if video_id:
                        added = (item.get("snippet") or {}).get("publishedAt")
                        entries.append((video_id, added))

                page_token = response.get("nextPageToken")
                if not page_token:
                    break

            by_id = self._videos(v for v, _ in entries)
            items = [
                dataclasses.replace(by_id[v], added_at=parse_timestamp(added))
                for v, added in entries if v in by_id
            ]
            logger.info(f"Retrieved {len(items)} items from YouTube playlist")
            return items

        except YouTubeQuotaExceededError:
            raise
        except Exception as e:
            logger.error(f"Failed to fetch playlist: {e}")
            return None

    def insert(self, playlist_id: str, item_id: str) -> bool:
        """Append video to playlist. Returns True on success."""
        def do_insert():
            body = {
                "snippet": {
                    "playlistId": playlist_id,
                    "resourceId": {"kind": "youtube#video", "videoId": item_id}
                }
            }
            return self._service.playlistItems().insert(
                part="snippet", body=body
            ).execute()

        try:
            self._retry(do_insert, f"add {item_id}")
            logger.debug(f"Inserted {item_id} into {playlist_id}")
            time.sleep(0.5)
            return True
        except YouTubeQuotaExceededError:
            raise
        except Exception as e:
            logger.error(f"Failed to add {item_id}: {e}")
            return False

    def current_channel(self) -> str:
        """Title (or id) of the channel the refresh token belongs to."""
        def do_list():
            return self._service.channels().list(part="snippet", mine=True, maxResults=1).execute()

        response = self._retry(do_list, "channels.list")
        items = response.get("items") or []
        if not items:
            raise YouTubeAPIError("No channel for this account")
        return (items[0].get("snippet") or {}).get("title") or items[0].get("id", "")

    def fetch_sample(self, playlist_id: str, limit: int = 5) -> list[CanonicalItem]:
        """First `limit` playlist entries. Errors propagate."""
        def do_list():
            return self._service.playlistItems().list(
                part="snippet,contentDetails",
                playlistId=playlist_id,
                maxResults=limit
            ).execute()

        response = self._retry(do_list, f"sample playlist {playlist_id}")
        entries = [
            ((item.get("contentDetails") or {}).get("videoId"),
             (item.get("snippet") or {}).get("publishedAt"))
            for item in response.get("items", [])
        ]
        by_id = self._videos(v for v, _ in entries)
        return [
            dataclasses.replace(by_id[v], added_at=parse_timestamp(added))
            for v, added in entries if v in by_id
        ]
