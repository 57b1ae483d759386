"""Shared helpers for the test suite."""

from __future__ import annotations

import shutil
import threading
import time
from typing import Callable

SLEEP = shutil.which("sleep") or "/bin/sleep"
SH = shutil.which("sh") or "/bin/sh"
CAT = shutil.which("cat") or "/bin/cat"


class BufferSink:
    """Output sink collecting everything the pty produced."""

    def __init__(self) -> None:
        self._data = bytearray()
        self._lock = threading.Lock()

    def write(self, data: bytes) -> None:
        with self._lock:
            self._data.extend(data)

    @property
    def text(self) -> str:
        with self._lock:
            return self._data.decode("utf-8", errors="replace")


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Polls `predicate` until it is true or `timeout` seconds have passed."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
