from __future__ import annotations

import asyncio

import pytest

from backend.venue_search.utils import background as background_module
from backend.venue_search.utils.background import BackgroundTaskRunner


@pytest.mark.asyncio
async def test_submitted_work_runs_after_submitter_returns() -> None:
    runner = BackgroundTaskRunner()
    events: list[str] = []

    async def work() -> None:
        events.append("work")

    runner.submit(work(), name="test.work")
    events.append("submitter")
    await runner.drain(timeout=1)

    assert events == ["submitter", "work"]
    assert runner.pending == 0


@pytest.mark.asyncio
async def test_failures_are_logged_and_counted(monkeypatch: pytest.MonkeyPatch) -> None:
    failed: list[str] = []
    monkeypatch.setattr(background_module, "record_background_failure", failed.append)
    runner = BackgroundTaskRunner()

    async def boom() -> None:
        raise RuntimeError("boom")

    task = runner.submit(boom(), name="test.boom")
    await runner.drain(timeout=1)

    assert task.done() and task.exception() is None
    assert failed == ["test.boom"]


@pytest.mark.asyncio
async def test_drain_times_out_on_stuck_work() -> None:
    runner = BackgroundTaskRunner()
    release = asyncio.Event()
    runner.submit(release.wait(), name="test.stuck")

    with pytest.raises(asyncio.TimeoutError):
        await runner.drain(timeout=0.01)

    release.set()
    await runner.drain(timeout=1)


@pytest.mark.asyncio
async def test_shutdown_cancels_stragglers() -> None:
    runner = BackgroundTaskRunner()
    task = runner.submit(asyncio.sleep(60), name="test.sleep")

    await runner.shutdown(timeout=0.01)

    assert task.cancelled()
    assert runner.pending == 0
