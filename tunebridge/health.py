#!/usr/bin/env python3
"""Credential and playlist health check - Entry Point

Validates the environment, refreshes both tokens, reports which accounts
they belong to, and reads the first few entries of every configured
playlist. Nothing is written to either catalog.
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from tunebridge.clients.spotify import SpotifyClient, SpotifyAuthError
from tunebridge.clients.youtube import YouTubeClient, YouTubeAuthError
from tunebridge.sync import PlaylistPair, data_dir, load_pairs, setup_logging

REQUIRED_ENV = (
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_CLIENT_SECRET",
    "SPOTIFY_REFRESH_TOKEN",
    "YOUTUBE_REFRESH_TOKEN",
)
SAMPLE_SIZE = 5

logger = logging.getLogger(__name__)


def missing_env() -> list[str]:
    return [name for name in REQUIRED_ENV if not os.environ.get(name)]


def _log_sample(items) -> None:
    for i, item in enumerate(items, 1):
        who = item.primary_artist or item.channel_title or "Unknown"
        added = item.added_at.isoformat() if item.added_at else "?"
        logger.info(f"   {i}. {who} - {item.title}  (added {added})")


def check_catalog(name: str, client, account: str, playlist_ids: list[str],
                  sample_size: int = SAMPLE_SIZE) -> bool:
    """Sample-read each playlist; one failing playlist does not stop the others."""
    logger.info(f"✓ {name}: authenticated as {account}")
    ok = True
    for playlist_id in playlist_ids:
        logger.info(f"→ {name}: checking playlist {playlist_id}")
        try:
            items = client.fetch_sample(playlist_id, sample_size)
        except Exception as e:
            logger.error(f"  ✗ {name}: cannot read playlist {playlist_id}: {e}")
            ok = False
            continue
        logger.info(f"  ✓ Fetched {len(items)} sample items")
        _log_sample(items)
    return ok


def run_checks(spotify, youtube, pairs: list[PlaylistPair]) -> bool:
    sp_ok = check_catalog("Spotify", spotify, spotify.current_user(),
                          [p.spotify_playlist_id for p in pairs])
    yt_ok = check_catalog("YouTube", youtube, youtube.current_channel(),
                          [p.youtube_playlist_id for p in pairs])
    return sp_ok and yt_ok


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    ap = argparse.ArgumentParser(prog="tunebridge-health",
                                 description="Check credentials and configured playlists.")
    ap.add_argument("--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    base = data_dir()
    setup_logging(base, args.verbose)

    missing = missing_env()
    if missing:
        logger.error(f"✗ Missing config: {', '.join(missing)}")
        return 1
    logger.info("✓ Environment has the required credentials")

    pairs = load_pairs()
    if not pairs:
        logger.warning("No playlist pairs configured; checking credentials only")

    try:
        spotify = SpotifyClient(base)
        youtube = YouTubeClient(os.environ["YOUTUBE_REFRESH_TOKEN"], base)
        ok = run_checks(spotify, youtube, pairs)
    except (SpotifyAuthError, YouTubeAuthError) as e:
        logger.error(f"✗ Authentication failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"✗ Health check failed: {e}")
        return 1

    if ok:
        logger.info("✓ Health check completed.")
        return 0
    logger.warning("Health check finished with errors")
    return 1


if __name__ == "__main__":
    sys.exit(main())
