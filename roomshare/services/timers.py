# roomshare/services/timers.py

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class Timers:
    """
    Named timers on the event loop: at most one pending timer per key.

    schedule() is schedule-or-replace: a new call for a key cancels the
    pending one first. repeat() re-arms itself after every run until the
    key is cancelled. Callbacks are coroutines, run as tasks when due.

    The loop is anything with call_later(delay, fn, *args); tests pass a
    manual clock.
    """

    def __init__(self, loop=None) -> None:
        self._loop = loop
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Future] = set()

    @property
    def loop(self):
        return self._loop or asyncio.get_running_loop()

    def schedule(self, key: str, delay: float, callback: TimerCallback) -> None:
        self.cancel(key)
        self._handles[key] = self.loop.call_later(delay, self._fire, key, callback, None)

    def repeat(self, key: str, interval: float, callback: TimerCallback) -> None:
        self.cancel(key)
        self._handles[key] = self.loop.call_later(interval, self._fire, key, callback, interval)

    def pending(self, key: str) -> bool:
        return key in self._handles

    def cancel(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)

    async def drain(self) -> None:
        """Wait for callbacks that already fired to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, key: str, callback: TimerCallback, interval: Optional[float]) -> None:
        self._handles.pop(key, None)
        if interval is not None:
            self._handles[key] = self.loop.call_later(interval, self._fire, key, callback, interval)
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Timer callback failed: {task.exception()}")
