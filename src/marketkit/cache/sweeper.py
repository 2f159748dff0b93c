"""Periodic expiry sweep for a TaggedCache, owned by the caller's event loop."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from types import TracebackType

from marketkit.cache.memory import TaggedCache
from marketkit.config.defaults import DEFAULT_CHECK_PERIOD_SECONDS
from marketkit.config.schema import CacheSettings

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Background task that evicts expired entries every check period.

    Nothing starts at construction time: call start() (or use
    ``async with``) from inside a running loop, and stop() on shutdown.
    The sweep runs on the loop thread, so it never interleaves with
    get/set calls made from the same loop.
    """

    def __init__(
        self,
        cache: TaggedCache,
        check_period: float = DEFAULT_CHECK_PERIOD_SECONDS,
    ) -> None:
        if check_period <= 0:
            raise ValueError(f"check_period must be positive, got {check_period}")
        self._cache = cache
        self._check_period = check_period
        self._task: asyncio.Task[None] | None = None
        self._total_swept = 0
        self._runs = 0

    @classmethod
    def from_settings(cls, cache: TaggedCache, settings: CacheSettings) -> CacheSweeper:
        return cls(cache, check_period=settings.check_period_seconds)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stats(self) -> dict:
        return {
            "running": self.running,
            "runs": self._runs,
            "total_swept": self._total_swept,
            "check_period": self._check_period,
        }

    def run_once(self) -> int:
        """Sweep now. Returns the number of entries evicted."""
        removed = self._cache.sweep_expired()
        self._runs += 1
        self._total_swept += removed
        return removed

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.debug("Cache sweeper started (every %.1fs)", self._check_period)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.debug("Cache sweeper stopped after %d runs", self._runs)

    async def __aenter__(self) -> CacheSweeper:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._check_period)
            try:
                self.run_once()
            except Exception as e:
                logger.error("Cache sweep failed: %s", e)
