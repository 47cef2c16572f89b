"""Periodic timers on the asyncio event loop.

Components never call ``asyncio.sleep`` or read the wall clock themselves;
they take a ``TimerService`` so tests can substitute a virtual clock.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from resmon.logger import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[], Awaitable[None] | None]


class TimerHandle(Protocol):
    """A running periodic timer."""

    @property
    def cancelled(self) -> bool: ...

    def cancel(self) -> None: ...


class TimerService(Protocol):
    """Clock plus periodic scheduling."""

    def now(self) -> float:
        """Current time in seconds since the epoch."""
        ...

    def call_every(self, interval: float, callback: TickCallback, name: str = "") -> TimerHandle:
        """Invoke ``callback`` every ``interval`` seconds until cancelled."""
        ...


class TaskTimerHandle:
    """Handle for a timer driven by an asyncio task."""

    def __init__(self, task: asyncio.Task) -> None:
        self._task = task
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._task.cancel()


class AsyncioTimerService:
    """
    Timer service for the running event loop.

    The first call happens one interval after scheduling. A callback that
    takes longer than the interval delays the next call rather than
    overlapping it. Exceptions from a callback are logged and the timer keeps
    running.
    """

    def now(self) -> float:
        return time.time()

    def call_every(self, interval: float, callback: TickCallback, name: str = "") -> TaskTimerHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(interval, callback), name=name or None)
        return TaskTimerHandle(task)

    async def _run(self, interval: float, callback: TickCallback) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))
            next_fire += interval
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Timer callback failed")
            # Fell behind; skip missed ticks instead of bursting
            if next_fire < loop.time():
                next_fire = loop.time() + interval
