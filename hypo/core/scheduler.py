"""
Periodic background jobs.

The conversation idle sweep and the cache TTL sweep each run on their own
asyncio task, started in the application lifespan and cancelled on shutdown.
Jobs are plain synchronous callables that hold their store's lock only for
the duration of one pass, so request handling is never blocked for long.
"""
import asyncio
from typing import Any, Callable, Optional

from hypo.core.logging_config import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Run ``job`` every ``interval_seconds`` until stopped.

    Example:
        >>> sweeper = PeriodicTask("cache-cleanup", cache.cleanup, 600)
        >>> sweeper.start()
        >>> ...
        >>> await sweeper.stop()
    """

    def __init__(self, name: str, job: Callable[[], Any], interval_seconds: float):
        self.name = name
        self.job = job
        self.interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.info(f"Started periodic task '{self.name}' (every {self.interval:g}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped periodic task '{self.name}'")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = self.job()
                logger.debug(f"Periodic task '{self.name}' ran: {result}")
            except Exception as e:
                # One failed pass must not kill the sweeper
                logger.error(f"Periodic task '{self.name}' failed: {e}", exc_info=True)
