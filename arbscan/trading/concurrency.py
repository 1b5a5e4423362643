from __future__ import annotations

import asyncio
from collections import deque
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:
    """Runs at most ``limit`` tasks at once; excess callers are admitted FIFO."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("ConcurrencyLimiter limit must be at least 1")
        self._limit = limit
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    async def _acquire(self) -> None:
        if self._active < self._limit and not self._waiters:
            self._active += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            elif not waiter.cancelled():
                # slot was already handed to us
                self._release()
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # slot is handed over directly, active count stays the same
                waiter.set_result(None)
                return
        self._active -= 1

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        await self._acquire()
        try:
            return await task()
        finally:
            self._release()
