"""Periodic ingestion scheduler.

Fires ``run_ingestion_cycle(base)`` every ``interval`` seconds from an asyncio
background task. Each tick runs in a worker thread as its own task, so a slow
cycle never delays the next tick; overlapping cycles rely on the store's
per-window uniqueness. Every error is logged and dropped here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from ratekeeper.models.constants import DEFAULT_BASE
from ratekeeper.services.ingestion import IngestionCoordinator

logger = logging.getLogger("ratekeeper.scheduler")


class IngestionScheduler:
    def __init__(
        self,
        coordinator: IngestionCoordinator,
        interval_seconds: float = 3 * 60 * 60,
        base: str = DEFAULT_BASE,
    ):
        self._coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.base = base
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def tick(self) -> None:
        """Run one cycle, swallowing (and logging) any failure."""
        logger.info("starting scheduled rate fetch", extra={"fields": {"base": self.base}})
        try:
            self._coordinator.run_ingestion_cycle(self.base)
        except Exception:
            logger.exception("scheduled rate fetch failed", extra={"fields": {"base": self.base}})
            return
        logger.info("scheduled rate fetch completed", extra={"fields": {"base": self.base}})

    async def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run())
        logger.info(
            "scheduler started",
            extra={"fields": {"interval_seconds": self.interval_seconds, "base": self.base}},
        )

    async def stop(self) -> None:
        tasks = list(self._inflight)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._inflight.clear()
        logger.info("scheduler stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            task = asyncio.create_task(asyncio.to_thread(self.tick))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
