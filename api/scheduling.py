#!/usr/bin/env python3
"""
Deferred callbacks for highlight timers and frame-chunked layout runs
"""

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Tuple


class CancelToken:
    """Shared flag checked by a chunked task before each scheduling turn"""

    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class _ManualHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Clock advanced explicitly by the caller.

    Used by batch scripts and tests: nothing runs until advance() or
    run_until_idle() is called.
    """

    def __init__(self):
        self.now = 0.0
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self.now + max(delay, 0.0), next(self._counter), handle, callback))
        return handle

    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        """Run every callback due within the next `seconds`"""
        deadline = self.now + seconds
        while self._queue and self._queue[0][0] <= deadline:
            when, _, handle, callback = heapq.heappop(self._queue)
            self.now = max(self.now, when)
            if not handle.cancelled:
                callback()
        self.now = deadline

    def run_until_idle(self, max_steps: int = 100000) -> None:
        steps = 0
        while self._queue and steps < max_steps:
            when, _, handle, callback = heapq.heappop(self._queue)
            self.now = max(self.now, when)
            if not handle.cancelled:
                callback()
            steps += 1


class AsyncioScheduler:
    """Schedules on the running asyncio loop (e.g. inside the web service)"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]):
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)
