"""Sliding-window rate limiter with a concurrency cap for outbound backend calls.

Callers are admitted strictly in arrival order. A caller that finds the window
full sleeps exactly until the oldest recorded call leaves the window instead
of polling.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from ..config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Allow at most ``max_per_window`` starts per rolling window and ``max_concurrent`` in flight."""

    def __init__(
        self,
        max_per_window: int = 30,
        window_seconds: float = 60.0,
        max_concurrent: int = 5,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_per_window < 1 or max_concurrent < 1:
            raise ValueError("rate limiter limits must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.max_concurrent = max_concurrent
        self._clock = clock
        self._sleep = sleep
        self._started: deque[float] = deque()
        self._in_flight = 0
        # asyncio.Lock wakes waiters in FIFO order, which gives the admission queue its fairness.
        self._admission = asyncio.Lock()
        self._slots = asyncio.Semaphore(max_concurrent)

    @classmethod
    def from_settings(cls) -> "RateLimiter":
        settings = get_settings()
        return cls(
            max_per_window=settings.rate_limit_per_window,
            window_seconds=settings.rate_limit_window_seconds,
            max_concurrent=settings.rate_limit_max_concurrent,
        )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def calls_in_window(self) -> int:
        self._prune(self._clock())
        return len(self._started)

    def _prune(self, now: float) -> None:
        horizon = now - self.window_seconds
        while self._started and self._started[0] <= horizon:
            self._started.popleft()

    async def _wait_for_window(self) -> None:
        while True:
            now = self._clock()
            self._prune(now)
            if len(self._started) < self.max_per_window:
                return
            wait = self._started[0] + self.window_seconds - now
            logger.debug("Rate limit window full; waiting %.3fs", wait)
            await self._sleep(max(wait, 0.0))

    async def acquire(self) -> None:
        async with self._admission:
            await self._slots.acquire()
            try:
                await self._wait_for_window()
            except BaseException:
                self._slots.release()
                raise
            self._started.append(self._clock())
            self._in_flight += 1

    def release(self) -> None:
        self._in_flight -= 1
        self._slots.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        async with self.slot():
            return await operation()


__all__ = ["RateLimiter"]
