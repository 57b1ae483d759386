"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# The environment relies on POSIX pseudo-terminals.
if sys.platform == "win32":
    collect_ignore_glob = ["test_*.py"]
else:
    from helpers import BufferSink
    from ttyenv.local.environment import StatusEvent, StatusTracker, TtyEnvironment


@pytest.fixture
def sink() -> "BufferSink":
    return BufferSink()


@pytest.fixture
def events() -> "list[StatusEvent]":
    return []


@pytest.fixture
def tracker(events) -> "StatusTracker":
    status_tracker = StatusTracker()
    status_tracker.subscribe(events.append)
    return status_tracker


@pytest.fixture
def environment(tmp_path: Path, sink, tracker):
    """An environment with an existing root directory and a short stats window."""
    env = TtyEnvironment(
        tmp_path / "server",
        name="test",
        console=sink,
        status_tracker=tracker,
        stats_interval=0.1,
    )
    env.create()
    yield env
    env.kill()
    env.wait_for_main_process_for(5)
