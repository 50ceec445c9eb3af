"""
Cancellable periodic task.

Each loop runs one full cycle, sleeps for its interval, then re-checks its
enable flag. stop() only flips the flag and wakes a sleeping loop: a cycle
that is already in flight always runs to completion.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    def __init__(
        self,
        name: str,
        cycle: Callable[[], Awaitable[Any]],
        interval_s: float,
        on_first_cycle: Optional[Callable[[], None]] = None,
    ):
        self.name = name
        self.interval_s = interval_s
        self._cycle = cycle
        self._on_first_cycle = on_first_cycle
        self._enabled = False
        self._in_cycle = False
        self._cycles = 0
        self._task: Optional[asyncio.Task[None]] = None
        self._wake: Optional[asyncio.Event] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_cycle(self) -> bool:
        return self._in_cycle

    @property
    def cycles(self) -> int:
        return self._cycles

    def start(self) -> None:
        self._enabled = True
        if self.running:
            # Drop a wake left by a stop() that this start() cancels.
            if self._wake is not None:
                self._wake.clear()
            return
        self._wake = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"deaddrop:{self.name}")

    def stop(self) -> None:
        self._enabled = False
        if self._wake is not None:
            self._wake.set()

    async def wait_stopped(self) -> None:
        """Wait for the loop to exit after stop(), letting an in-flight cycle finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        logger.debug(f"{self.name} loop started (interval {self.interval_s}s)")
        while self._enabled:
            self._in_cycle = True
            try:
                await self._cycle()
            except Exception:
                logger.exception(f"{self.name} cycle failed")
            finally:
                self._in_cycle = False
            self._cycles += 1

            if self._cycles == 1 and self._on_first_cycle is not None:
                try:
                    self._on_first_cycle()
                except Exception:
                    logger.exception(f"{self.name} first-cycle hook failed")

            if not self._enabled:
                break
            await self._sleep()
        logger.debug(f"{self.name} loop stopped after {self._cycles} cycles")

    async def _sleep(self) -> None:
        assert self._wake is not None
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.interval_s)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    def __repr__(self) -> str:
        return f"PeriodicTask(name={self.name!r}, enabled={self._enabled}, cycles={self._cycles})"


class BackgroundTasks:
    """Fire-and-forget coroutines whose failures are logged, not raised."""

    def __init__(self, owner: str):
        self._owner = owner
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Awaitable[Any], description: str) -> "asyncio.Task[Any]":
        async def _do() -> Any:
            try:
                return await coro
            except Exception as e:
                logger.error(f"{self._owner}: {description} failed: {e}")
                return None

        task = asyncio.get_running_loop().create_task(_do())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
