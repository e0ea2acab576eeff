"""
tests/test_purge_task.py -- The background session purge task in api/main.py.

Covers:
  - an unexpected exception from purge_expired does not end the sweep
  - lifespan shutdown cancels the task and waits for it to finish
"""

from __future__ import annotations

import asyncio
import contextlib
from types import SimpleNamespace

from fastapi import FastAPI

import api.main as api_main


class FlakySessionStore:
    """purge_expired fails on the first call, then succeeds."""

    def __init__(self) -> None:
        self.calls = 0

    def purge_expired(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("disk on fire")
        return 1


def test_purge_loop_survives_unexpected_error(monkeypatch):
    monkeypatch.setattr(api_main.settings, "session_purge_interval_seconds", 0)
    store = FlakySessionStore()
    app = SimpleNamespace(state=SimpleNamespace(session_store=store))

    async def run():
        task = asyncio.create_task(api_main._purge_loop(app))
        for _ in range(500):
            if store.calls >= 3 or task.done():
                break
            await asyncio.sleep(0.01)
        finished_early = task.done()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return finished_early

    assert asyncio.run(run()) is False
    assert store.calls >= 3


def test_lifespan_shutdown_awaits_purge_task(monkeypatch):
    monkeypatch.setattr(
        api_main.settings,
        "database_url",
        "sqlite:///file:test_lifespan_purge?mode=memory&cache=shared&uri=true",
    )
    app = FastAPI()

    async def run():
        async with api_main.lifespan(app):
            task = app.state.purge_task
            assert not task.done()
        return task

    task = asyncio.run(run())
    assert task.done()
    assert task.cancelled()
