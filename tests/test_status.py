import json

from tunebridge.core.models import SP2YT, YT2SP, SyncResult
from tunebridge.core.status import write_running_status, write_status


def _result(direction, added=0, errors=None):
    return SyncResult(
        success=not errors, direction=direction, items_added=added, items_mapped=1,
        items_skipped=0, errors=errors or [], source_count=5, target_count=4, duration=0.1,
    )


def test_write_status_success(tmp_path):
    status_file = tmp_path / "sync_status.json"
    results = [("main", _result(SP2YT, added=2)), ("main", _result(YT2SP, added=1))]

    assert write_status(results, status_file) is True

    data = json.loads(status_file.read_text())
    assert data["status"] == "success"
    assert data["items_added"] == 3
    assert data["last_error"] is None
    assert [leg["direction"] for leg in data["legs"]] == [SP2YT, YT2SP]
    assert data["legs"][0]["pair"] == "main"


def test_write_status_failure_keeps_last_error(tmp_path):
    status_file = tmp_path / "sync_status.json"
    results = [("main", _result(SP2YT, errors=["Failed to add: x"]))]

    write_status(results, status_file)

    data = json.loads(status_file.read_text())
    assert data["status"] == "failed"
    assert data["last_error"] == "Failed to add: x"
    assert data["legs"][0]["status"] == "failed"


def test_empty_results_are_a_failure(tmp_path):
    status_file = tmp_path / "sync_status.json"
    write_status([], status_file)
    assert json.loads(status_file.read_text())["status"] == "failed"


def test_running_status(tmp_path):
    status_file = tmp_path / "sync_status.json"
    assert write_running_status(status_file) is True
    assert json.loads(status_file.read_text())["status"] == "running"


def test_unwritable_status_returns_false(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    assert write_status([], blocker / "sync_status.json") is False
