"""Fixed-delay scheduling of recurring agent ticks."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Tick = Callable[[], Awaitable[object]]
IntervalSource = Callable[[], float]


class ScheduleHandle:
    """Cancel handle for one agent's recurring loop."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._cancelled = asyncio.Event()
        self._wakeup = asyncio.Event()
        self._runner: Optional[asyncio.Task[None]] = None
        self.ticks = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self._runner is not None and self._runner.done()

    def cancel(self) -> None:
        """Prevent further ticks; a tick already in flight finishes normally."""
        self._cancelled.set()
        self._wakeup.set()

    def reschedule(self) -> None:
        """Recompute the next due time, e.g. after the interval changed."""
        self._wakeup.set()

    async def wait(self) -> None:
        """Wait until the loop has exited."""
        if self._runner is None:
            return
        try:
            await asyncio.shield(self._runner)
        except asyncio.CancelledError:
            if not self._runner.cancelled():
                raise


class IntervalScheduler:
    """Drive each scheduled agent on its own fixed-delay loop.

    The next tick starts ``interval()`` seconds after the previous tick
    completed, so a slow tick pushes the following one out instead of
    overlapping it. The interval is read every time the loop waits.
    """

    def __init__(self) -> None:
        self._handles: Dict[str, ScheduleHandle] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(
        self,
        name: str,
        tick: Tick,
        interval: IntervalSource,
        *,
        run_immediately: bool = True,
    ) -> ScheduleHandle:
        if self._closed:
            raise RuntimeError("Scheduler is shut down")
        handle = ScheduleHandle(name)
        handle._runner = asyncio.create_task(
            self._drive(handle, tick, interval, run_immediately),
            name=f"schedule:{name}",
        )
        self._handles[name] = handle
        handle._runner.add_done_callback(lambda _: self._forget(handle))
        return handle

    def get(self, name: str) -> Optional[ScheduleHandle]:
        return self._handles.get(name)

    def _forget(self, handle: ScheduleHandle) -> None:
        if self._handles.get(handle.name) is handle:
            del self._handles[handle.name]

    async def _drive(
        self,
        handle: ScheduleHandle,
        tick: Tick,
        interval: IntervalSource,
        run_immediately: bool,
    ) -> None:
        loop = asyncio.get_running_loop()
        last_end: Optional[float] = None if run_immediately else loop.time()
        logger.debug("Schedule %s started", handle.name)

        while not handle.cancelled:
            if last_end is not None and not await self._wait_until_due(handle, last_end, interval):
                break
            if handle.cancelled:
                break
            try:
                await tick()
            except Exception:  # noqa: BLE001
                logger.exception("Scheduled tick for %s raised", handle.name)
            handle.ticks += 1
            last_end = loop.time()

        logger.debug("Schedule %s stopped after %d tick(s)", handle.name, handle.ticks)

    @staticmethod
    async def _wait_until_due(handle: ScheduleHandle, last_end: float, interval: IntervalSource) -> bool:
        """Sleep until ``last_end + interval()``; False when cancelled meanwhile."""
        loop = asyncio.get_running_loop()
        while True:
            handle._wakeup.clear()
            if handle.cancelled:
                return False
            remaining = last_end + interval() - loop.time()
            if remaining <= 0:
                return True
            try:
                await asyncio.wait_for(handle._wakeup.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return True

    async def shutdown(self, grace: Optional[float] = None) -> None:
        """Cancel every schedule; in-flight ticks get ``grace`` seconds to finish."""
        self._closed = True
        handles = list(self._handles.values())
        for handle in handles:
            handle.cancel()

        runners = [handle._runner for handle in handles if handle._runner is not None]
        if not runners:
            return
        _, pending = await asyncio.wait(runners, timeout=grace)
        for runner in pending:
            logger.warning("Abandoning in-flight tick for %s", runner.get_name())
            runner.cancel()
        await asyncio.gather(*runners, return_exceptions=True)
