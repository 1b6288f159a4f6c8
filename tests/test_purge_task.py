"""
tests/test_purge_task.py -- The background expired-session sweep in api/main.py.

Covers:
  - a failing sweep is logged and the loop keeps running
  - cancellation (app shutdown) still stops the loop

The loop is driven directly with asyncio.run() and a stand-in sessions object,
with the interval set to 0 so no test waits on a real timer.
"""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace

import pytest

import api.main as api_main


class FlakySessions:
    """purge_expired() fails on its first call and succeeds afterwards."""

    def __init__(self) -> None:
        self.calls = 0

    def purge_expired(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("disk went away")
        return 1


def _run_until(sessions: FlakySessions, calls: int) -> bool:
    app = SimpleNamespace(state=SimpleNamespace(sessions=sessions))

    async def drive():
        task = asyncio.create_task(api_main._purge_loop(app))
        for _ in range(500):
            if sessions.calls >= calls or task.done():
                break
            await asyncio.sleep(0.01)
        alive = not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return alive

    return asyncio.run(drive())


def test_unexpected_error_does_not_stop_the_sweep(monkeypatch, caplog):
    monkeypatch.setattr(api_main._settings, "session_purge_interval_seconds", 0)
    sessions = FlakySessions()

    with caplog.at_level(logging.INFO, logger="beerdiary.api"):
        alive = _run_until(sessions, calls=3)

    assert alive
    assert sessions.calls >= 3
    assert "Session purge failed" in caplog.text
    assert "disk went away" in caplog.text
    assert "Purged 1 expired sessions" in caplog.text
