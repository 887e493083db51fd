from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from durabletask.app.services.watch_service import reset_watch_service


def pytest_sessionstart(session: pytest.Session) -> None:
    started_at = datetime.now(tz=timezone.utc).isoformat(timespec="seconds")
    print(f"[durable-test] status=running started_at={started_at}", flush=True)


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    finished_at = datetime.now(tz=timezone.utc).isoformat(timespec="seconds")
    result = "ok" if exitstatus == 0 else "failed"
    print(f"[durable-test] status=finished result={result} exit_code={exitstatus} finished_at={finished_at}", flush=True)


@pytest.fixture(autouse=True)
def fresh_watch_service():
    """Every test gets its own watch service; leftovers are shut down afterwards."""

    reset_watch_service()
    yield
    reset_watch_service()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws
