"""Status file writer for the last sync run"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from tunebridge.core.models import SyncResult


def _leg_summary(pair: str, result: SyncResult) -> dict:
    return {
        "pair": pair,
        "direction": result.direction,
        "status": "success" if result.success else "failed",
        "dry_run": result.dry_run,
        "items_added": result.items_added,
        "items_mapped": result.items_mapped,
        "items_skipped": result.items_skipped,
        "already_mapped": result.already_mapped,
        "last_error": result.errors[-1] if result.errors else None,
        "source_item_count": result.source_count,
        "target_item_count": result.target_count,
    }


def write_status(results: list[tuple[str, SyncResult]], status_file: Path) -> bool:
    data = {
        "status": "success" if results and all(r.success for _, r in results) else "failed",
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "items_added": sum(r.items_added for _, r in results),
        "last_error": next((r.errors[-1] for _, r in reversed(results) if r.errors), None),
        "legs": [_leg_summary(pair, r) for pair, r in results],
    }
    return _atomic_write(status_file, data)


def write_running_status(status_file: Path) -> bool:
    data = {
        "status": "running",
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "items_added": 0,
        "last_error": None,
        "legs": [],
    }
    return _atomic_write(status_file, data)


def _atomic_write(path: Path, data: dict) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".status_", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, path)
            return True
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
    except Exception:
        return False
