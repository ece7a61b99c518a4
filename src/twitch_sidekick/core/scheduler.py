"""Periodic task scheduling with clear start/stop semantics."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

# Milliseconds since the epoch. Every component takes one of these so tests
# can substitute a manual clock.
Clock = Callable[[], float]


def system_clock() -> float:
    """Wall-clock time in milliseconds."""
    return time.time() * 1000


class PeriodicTask:
    """Runs a coroutine callback every ``interval`` seconds.

    Each iteration runs in its own background task. If the previous iteration
    is still in flight when the timer fires, that tick is skipped, so a slow
    external call never stalls the timer. ``stop`` cancels future ticks but
    leaves an in-flight iteration to complete.

    In manual mode ``start`` only flips the running flag and ticks are driven
    explicitly with ``run_once``.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
        manual: bool = False,
    ):
        if interval <= 0:
            raise ValueError(f"Interval for {name} must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._manual = manual
        self._running = False
        self._timer: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self.ticks = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start ticking. No-op if already running."""
        if self._running:
            return
        self._running = True
        if not self._manual:
            self._timer = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.debug(f"PERIODIC [{self.name}] started every {self.interval}s")

    def stop(self) -> None:
        """Stop future ticks. An in-flight iteration is allowed to finish."""
        if not self._running:
            return
        self._running = False
        if self._timer:
            self._timer.cancel()
            self._timer = None
        logger.debug(f"PERIODIC [{self.name}] stopped")

    async def run_once(self) -> Any:
        """Run one iteration inline. Exceptions are logged, not raised."""
        self.ticks += 1
        try:
            return await self._callback()
        except Exception:
            logger.exception(f"PERIODIC [{self.name}] iteration failed")
            return None

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            if self._inflight and not self._inflight.done():
                self.skipped += 1
                logger.debug(f"PERIODIC [{self.name}] previous iteration still running, skipping")
                continue
            self._inflight = asyncio.create_task(self.run_once())


class Scheduler:
    """Owns every periodic task of the bot."""

    def __init__(self, manual: bool = False):
        self._manual = manual
        self._tasks: dict[str, PeriodicTask] = {}

    @property
    def manual(self) -> bool:
        return self._manual

    def add(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
    ) -> PeriodicTask:
        """Register a periodic task (not started)."""
        if name in self._tasks:
            raise ValueError(f"Periodic task {name!r} already registered")
        task = PeriodicTask(name, interval, callback, manual=self._manual)
        self._tasks[name] = task
        return task

    def get(self, name: str) -> PeriodicTask:
        return self._tasks[name]

    async def tick(self, name: str) -> Any:
        """Drive one iteration of a task by hand."""
        return await self._tasks[name].run_once()

    def stop_all(self) -> None:
        for task in self._tasks.values():
            task.stop()

    def status(self) -> dict[str, dict[str, Any]]:
        return {
            name: {
                "running": task.running,
                "interval": task.interval,
                "ticks": task.ticks,
                "skipped": task.skipped,
            }
            for name, task in self._tasks.items()
        }
