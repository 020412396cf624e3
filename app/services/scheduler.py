"""Periodic and opportunistic sync triggering."""

from __future__ import annotations

import asyncio
import logging

from ..context import CacheContext
from ..utils import now_ms
from .sync import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Owns the background loop that keeps the cache fresh.

    Runs are never cancelled: the loop only ever cancels its own sleep, and
    every run it starts is shielded and tracked so ``stop`` can wait for it.
    """

    def __init__(
        self,
        context: CacheContext,
        orchestrator: SyncOrchestrator,
        *,
        interval_seconds: int,
    ) -> None:
        self._context = context
        self._orchestrator = orchestrator
        self._interval = max(0, interval_seconds)
        self._loop_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[bool]] = set()
        self._due_at = 0.0
        self._rearmed = asyncio.Event()

    @property
    def interval_seconds(self) -> int:
        return self._interval

    @property
    def background_runs(self) -> int:
        return len(self._background)

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def next_sync_at(self) -> int | None:
        if not self._interval or not self._context.last_sync_at:
            return None
        return self._context.last_sync_at + self._interval * 1000

    def is_stale(self) -> bool:
        if not self._interval:
            return False
        age_ms = now_ms() - self._context.last_sync_at
        return age_ms > self._interval * 1000

    def start(self) -> None:
        if self._interval <= 0:
            logger.info("Periodic sync disabled")
            return
        if self.running:
            return
        self._arm()
        self._loop_task = asyncio.create_task(self._loop(), name="sync-loop")

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def _arm(self) -> None:
        self._due_at = asyncio.get_running_loop().time() + self._interval
        self._rearmed.set()

    async def _sleep_until_due(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            remaining = self._due_at - loop.time()
            if remaining <= 0:
                return
            self._rearmed.clear()
            try:
                await asyncio.wait_for(self._rearmed.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    async def _loop(self) -> None:
        while True:
            await self._sleep_until_due()
            self._arm()
            try:
                await asyncio.shield(self.launch())
            except Exception:
                logger.exception("Scheduled sync crashed")

    def launch(self) -> asyncio.Task[bool]:
        """Start a tracked background run and return its task."""

        task = asyncio.create_task(self._orchestrator.run(rediscover=True))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def maybe_trigger(self) -> bool:
        """Start a background run when the cache is stale and nothing is running."""

        if self._background or not self._orchestrator.is_idle:
            return False
        if not self.is_stale():
            return False
        self.launch()
        return True

    def _on_background_done(self, task: asyncio.Task[bool]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background sync failed", exc_info=exc)

    async def trigger_now(self, *, rediscover: bool = True) -> bool:
        """Run a sync immediately and restart the periodic timer."""

        ran = await self._orchestrator.run(rediscover=rediscover)
        self.restart()
        return ran

    def restart(self) -> None:
        """Push the next periodic run a full interval away without touching runs in flight."""

        if self.running:
            self._arm()
