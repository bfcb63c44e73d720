"""Tests for the fixed-delay interval scheduler."""
from __future__ import annotations

import asyncio
from typing import List

import pytest

from autoagents.scheduling.scheduler import IntervalScheduler


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.mark.anyio
async def test_next_tick_waits_a_full_interval_after_completion() -> None:
    loop = asyncio.get_running_loop()
    starts: List[float] = []
    ends: List[float] = []

    async def tick() -> None:
        starts.append(loop.time())
        await asyncio.sleep(0.05)
        ends.append(loop.time())

    scheduler = IntervalScheduler()
    scheduler.schedule("slow", tick, lambda: 0.05)
    await asyncio.sleep(0.35)
    await scheduler.shutdown(grace=1)

    assert len(starts) >= 2
    for previous_end, next_start in zip(ends, starts[1:]):
        assert 0.04 <= next_start - previous_end <= 0.15


@pytest.mark.anyio
async def test_cancel_lets_in_flight_tick_finish() -> None:
    started = asyncio.Event()
    finished: List[bool] = []

    async def tick() -> None:
        started.set()
        await asyncio.sleep(0.1)
        finished.append(True)

    scheduler = IntervalScheduler()
    handle = scheduler.schedule("busy", tick, lambda: 10)
    await started.wait()

    handle.cancel()
    await handle.wait()

    assert finished == [True]
    assert handle.done
    assert handle.ticks == 1
    assert scheduler.get("busy") is None


@pytest.mark.anyio
async def test_failing_tick_does_not_stop_the_schedule() -> None:
    calls: List[int] = []

    async def tick() -> None:
        calls.append(1)
        raise RuntimeError("boom")

    scheduler = IntervalScheduler()
    handle = scheduler.schedule("flaky", tick, lambda: 0.01)
    await asyncio.sleep(0.1)
    handle.cancel()
    await handle.wait()

    assert len(calls) >= 2


@pytest.mark.anyio
async def test_reschedule_picks_up_shorter_interval() -> None:
    interval = [10.0]
    calls: List[int] = []

    async def tick() -> None:
        calls.append(1)

    scheduler = IntervalScheduler()
    handle = scheduler.schedule("tunable", tick, lambda: interval[0])
    await asyncio.sleep(0.05)
    assert len(calls) == 1

    interval[0] = 0.01
    handle.reschedule()
    await asyncio.sleep(0.1)
    await scheduler.shutdown(grace=1)

    assert len(calls) >= 2


@pytest.mark.anyio
async def test_run_immediately_false_waits_first() -> None:
    calls: List[int] = []

    async def tick() -> None:
        calls.append(1)

    scheduler = IntervalScheduler()
    scheduler.schedule("lazy", tick, lambda: 10, run_immediately=False)
    await asyncio.sleep(0.05)
    await scheduler.shutdown(grace=1)

    assert calls == []


@pytest.mark.anyio
async def test_shutdown_abandons_ticks_past_grace() -> None:
    async def tick() -> None:
        await asyncio.sleep(10)

    scheduler = IntervalScheduler()
    handle = scheduler.schedule("stuck", tick, lambda: 10)
    await asyncio.sleep(0.01)

    await scheduler.shutdown(grace=0.05)

    assert handle.done
    assert scheduler.closed
    with pytest.raises(RuntimeError):
        scheduler.schedule("late", tick, lambda: 10)
