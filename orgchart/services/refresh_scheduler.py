from __future__ import annotations

import asyncio
import contextlib
import logging

from orgchart.core.config import Settings
from orgchart.services.user_cache_service import UserCacheService

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Background task that periodically warms the user cache.

    Waits ``initial_delay`` seconds, then runs ``preload_all()`` every
    ``refresh_interval`` seconds until stopped. Both waits return as soon as
    ``stop()`` is called.
    """

    def __init__(self, cache: UserCacheService, initial_delay: float = 30.0, refresh_interval: float = 6 * 3600) -> None:
        self.cache = cache
        self.initial_delay = initial_delay
        self.refresh_interval = refresh_interval
        self.cycles_completed = 0
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, cache: UserCacheService, settings: Settings) -> RefreshScheduler:
        return cls(
            cache,
            initial_delay=settings.USER_CACHE_INITIAL_DELAY_SECONDS,
            refresh_interval=settings.USER_CACHE_REFRESH_INTERVAL_HOURS * 3600,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info(
            "User data refresh starting with initial delay %.0fs, refresh interval %.0fs",
            self.initial_delay,
            self.refresh_interval,
        )
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="user-cache-refresh")

    async def stop(self, timeout: float = 5.0) -> None:
        if self._task is None:
            return
        logger.info("User data refresh stopping...")
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("User data refresh did not stop within %.1fs; cancelled", timeout)
        finally:
            self._task = None

    async def _wait(self, seconds: float) -> bool:
        """Sleep for ``seconds``; return True if ``stop()`` was called meanwhile."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        return self._stop_event.is_set()

    async def _run(self) -> None:
        if await self._wait(self.initial_delay):
            logger.info("User data refresh stopped before first run")
            return

        while True:
            try:
                logger.info("Starting background user data refresh...")
                summary = await self.cache.preload_all()
                logger.info(
                    "Background user data refresh completed (%d ok, %d failed). Next refresh in %.0fs",
                    summary.succeeded,
                    summary.failed,
                    self.refresh_interval,
                )
            except Exception:
                logger.exception("Error during background user data refresh")
            self.cycles_completed += 1

            if await self._wait(self.refresh_interval):
                break

        logger.info("User data refresh stopped.")
