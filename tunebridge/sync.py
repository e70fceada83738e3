#!/usr/bin/env python3
"""Spotify <-> YouTube playlist reconciliation - Entry Point"""

import argparse
import fcntl
import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from tunebridge.clients.spotify import SpotifyClient, SpotifyAuthError, SpotifySchemaError
from tunebridge.clients.youtube import YouTubeClient, YouTubeAuthError, YouTubeQuotaExceededError
from tunebridge.core.cache import SyncCacheStore
from tunebridge.core.models import SP2YT, CachePersistError, SyncOptions, SyncResult
from tunebridge.core.status import write_running_status, write_status
from tunebridge.core.sync_engine import MODES, run_pair

PLACEHOLDER_IDS = {"SPOTIFY_PLAYLIST_ID", "YOUTUBE_PLAYLIST_ID"}
STALE_LOCK_SECONDS = 1800

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class PlaylistPair:
    name: str
    spotify_playlist_id: str
    youtube_playlist_id: str


def data_dir() -> Path:
    return Path(os.environ.get("SYNC_DATA_DIR", "data"))


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.FileHandler(log_dir / "tunebridge.log", encoding="utf-8"),
            logging.StreamHandler()
        ],
        force=True
    )
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def acquire_lock(lock_file: Path) -> int | None:
    try:
        if lock_file.exists():
            age = time.time() - lock_file.stat().st_mtime
            if age > STALE_LOCK_SECONDS:
                logger.warning(f"Removing stale lock file (age: {age:.0f}s)")
                lock_file.unlink(missing_ok=True)

        fd = os.open(str(lock_file), os.O_CREAT | os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            raise
        os.write(fd, f"{os.getpid()}\n".encode())
        return fd
    except OSError:
        return None


def release_lock(fd: int, lock_file: Path) -> None:
    try:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
        lock_file.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to release lock: {e}")


def _is_placeholder(playlist_id: str | None) -> bool:
    return not playlist_id or playlist_id in PLACEHOLDER_IDS


def load_pairs() -> list[PlaylistPair]:
    """Pairs from SYNC_PAIRS_FILE, else one pair from SPOTIFY_/YOUTUBE_PLAYLIST_ID."""
    pairs_file = os.environ.get("SYNC_PAIRS_FILE")
    if pairs_file:
        raw = json.loads(Path(pairs_file).read_text(encoding="utf-8")).get("pairs", [])
    else:
        raw = [{
            "spotifyPlaylistId": os.environ.get("SPOTIFY_PLAYLIST_ID"),
            "youtubePlaylistId": os.environ.get("YOUTUBE_PLAYLIST_ID"),
        }]

    pairs = []
    for i, entry in enumerate(raw):
        sp_id = entry.get("spotifyPlaylistId")
        yt_id = entry.get("youtubePlaylistId")
        if _is_placeholder(sp_id) or _is_placeholder(yt_id):
            logger.warning(f"Skipping pair #{i + 1}: set real playlist IDs")
            continue
        pairs.append(PlaylistPair(entry.get("name") or f"pair{i + 1}", sp_id, yt_id))
    return pairs


def load_config() -> dict:
    required = ["YOUTUBE_REFRESH_TOKEN"]
    config = {}
    missing = []

    for var in required:
        value = os.environ.get(var)
        if value:
            config[var] = value
        else:
            missing.append(var)

    if missing:
        raise ConfigError(f"Missing config: {', '.join(missing)}")

    config["pairs"] = load_pairs()
    if not config["pairs"]:
        raise ConfigError("No playlist pairs configured")

    return config


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="tunebridge",
        description="Idempotent Spotify <-> YouTube playlist reconciliation.",
    )
    ap.add_argument("--mode", choices=MODES, default=SP2YT,
                    help="Which leg(s) to run (default: sp2yt)")
    ap.add_argument("--dry-run", action="store_true",
                    help="Plan only; no playlist writes, cache untouched")
    ap.add_argument("--duration-slack", type=int, default=7,
                    help="Duration match window in seconds (default: 7)")
    ap.add_argument("--window", type=int, default=10,
                    help="Most recent source items considered per run (default: 10)")
    ap.add_argument("--window-yt", type=int, default=None,
                    help="Recency window for the yt2sp leg (default: --window)")
    ap.add_argument("--verbose", action="store_true",
                    help="Log match reasoning for every candidate")
    return ap.parse_args(argv)


def _fail(message: str, status_file: Path) -> int:
    write_status([("", SyncResult.failure(message))], status_file)
    return 1


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    base = data_dir()
    setup_logging(base, args.verbose)

    lock_file = base / ".sync.lock"
    status_file = base / "sync_status.json"

    lock_fd = acquire_lock(lock_file)
    if lock_fd is None:
        logger.warning("Another sync running, exiting")
        return 0

    try:
        write_running_status(status_file)
        try:
            config = load_config()
        except ConfigError as e:
            logger.error(str(e))
            return _fail(str(e), status_file)

        logger.info("Initializing Spotify client...")
        try:
            spotify = SpotifyClient(base)
        except SpotifyAuthError as e:
            logger.error(f"Spotify auth failed: {e}")
            return _fail(f"Spotify auth failed: {e}", status_file)

        logger.info("Initializing YouTube client...")
        try:
            youtube = YouTubeClient(config["YOUTUBE_REFRESH_TOKEN"], base)
        except YouTubeAuthError as e:
            logger.error(f"YouTube auth failed: {e}")
            return _fail(f"YouTube auth failed: {e}", status_file)

        store = SyncCacheStore(base / "cache")
        options = SyncOptions(
            duration_slack_sec=args.duration_slack,
            window=args.window,
            dry_run=args.dry_run,
            verbose=args.verbose,
        )

        results: list[tuple[str, SyncResult]] = []
        for pair in config["pairs"]:
            try:
                legs = run_pair(spotify, youtube, store,
                                pair.spotify_playlist_id, pair.youtube_playlist_id,
                                mode=args.mode, options=options,
                                window_yt=args.window_yt, label=pair.name)
            except CachePersistError as e:
                # The next run would re-admit every candidate: duplicate-add risk.
                logger.critical(f"[{pair.name}] CACHE NOT SAVED: {e}")
                results.append((pair.name, SyncResult.failure(f"Cache not saved: {e}")))
                continue
            results.extend((pair.name, r) for r in legs)

        write_status(results, status_file)

        if all(r.success for _, r in results):
            added = sum(r.items_added for _, r in results)
            logger.info(f"Done: +{added} across {len(results)} leg(s)"
                        + (" [DRY-RUN]" if args.dry_run else ""))
            return 0
        logger.warning(f"Sync errors: {[e for _, r in results for e in r.errors]}")
        return 1

    except YouTubeQuotaExceededError as e:
        logger.error(f"Quota exceeded: {e}")
        return _fail(f"Quota exceeded: {e}", status_file)
    except SpotifySchemaError as e:
        logger.error(f"Spotify schema error: {e}")
        return _fail(f"Spotify schema error: {e}", status_file)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return _fail(f"Unexpected error: {e}", status_file)
    finally:
        release_lock(lock_fd, lock_file)


if __name__ == "__main__":
    sys.exit(main())
