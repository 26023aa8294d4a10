"""Unit tests for ProposalScheduler — per-proposal auto-close timers."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from src.sc_session.application.scheduler import ProposalScheduler

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def scheduler():
    s = ProposalScheduler(now_fn=lambda: T0)
    yield s
    await s.shutdown()


async def test_overdue_timer_fires_immediately(scheduler: ProposalScheduler) -> None:
    fired = asyncio.Event()

    async def callback(pid: str) -> None:
        assert pid == "p1"
        fired.set()

    scheduler.schedule("p1", T0 - timedelta(minutes=1), callback)
    await asyncio.wait_for(fired.wait(), timeout=1)
    await asyncio.sleep(0)
    assert not scheduler.is_pending("p1")


async def test_cancel_pending_timer(scheduler: ProposalScheduler) -> None:
    calls: list[str] = []

    async def callback(pid: str) -> None:
        calls.append(pid)

    scheduler.schedule("p1", T0 + timedelta(minutes=5), callback)
    assert scheduler.is_pending("p1")
    assert scheduler.pending_count == 1
    assert scheduler.cancel("p1") is True
    assert scheduler.cancel("p1") is False
    await asyncio.sleep(0.01)
    assert calls == []
    assert scheduler.pending_count == 0


async def test_reschedule_replaces_previous_timer(scheduler: ProposalScheduler) -> None:
    calls: list[str] = []

    async def callback(pid: str) -> None:
        calls.append(pid)

    scheduler.schedule("p1", T0 + timedelta(minutes=5), callback)
    scheduler.schedule("p1", T0, callback)
    await asyncio.sleep(0.01)
    assert calls == ["p1"]


async def test_fired_callback_not_cancellable(scheduler: ProposalScheduler) -> None:
    started = asyncio.Event()
    release = asyncio.Event()
    finished: list[str] = []

    async def callback(pid: str) -> None:
        started.set()
        await release.wait()
        finished.append(pid)

    scheduler.schedule("p1", T0, callback)
    await asyncio.wait_for(started.wait(), timeout=1)
    # Already firing: no longer pending, cancel cannot reach it
    assert scheduler.cancel("p1") is False
    release.set()
    await asyncio.sleep(0.01)
    assert finished == ["p1"]


async def test_failing_callback_is_logged_not_raised(
    scheduler: ProposalScheduler, caplog: pytest.LogCaptureFixture
) -> None:
    async def callback(pid: str) -> None:
        raise RuntimeError("boom")

    scheduler.schedule("p1", T0, callback)
    await asyncio.sleep(0.01)
    assert "Auto-close of proposal p1 failed" in caplog.text


async def test_shutdown_cancels_pending_and_waits_for_firing() -> None:
    scheduler = ProposalScheduler(now_fn=lambda: T0)
    started = asyncio.Event()
    finished: list[str] = []

    async def slow(pid: str) -> None:
        started.set()
        await asyncio.sleep(0.01)
        finished.append(pid)

    async def never(pid: str) -> None:
        finished.append(pid)

    scheduler.schedule("p1", T0, slow)
    scheduler.schedule("p2", T0 + timedelta(hours=1), never)
    await asyncio.wait_for(started.wait(), timeout=1)
    await scheduler.shutdown()
    assert finished == ["p1"]
    assert scheduler.pending_count == 0
