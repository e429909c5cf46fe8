"""Periodic coordinator cleanup (expired locks and aged-out states)."""

from __future__ import annotations

import asyncio

from queue_processor.coordination.coordinator import DocumentCoordinator
from queue_processor.models.coordination import CleanupResult
from queue_processor.utils.logging import get_logger

logger = get_logger(__name__)


class CleanupScheduler:
    """Runs :meth:`DocumentCoordinator.cleanup` every *interval_seconds*.

    A failed run is logged and the schedule continues.
    """

    def __init__(self, coordinator: DocumentCoordinator, interval_seconds: float = 3600.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._coordinator = coordinator
        self._interval = interval_seconds
        self._runs = 0

    @property
    def runs(self) -> int:
        return self._runs

    async def run_once(self) -> CleanupResult:
        result = await self._coordinator.cleanup()
        self._runs += 1
        return result

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        logger.info("cleanup_scheduler_started", intervalSeconds=self._interval)
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_once()
            except Exception as exc:
                logger.exception("cleanup_run_failed", error=str(exc))
        logger.info("cleanup_scheduler_stopped", runs=self._runs)
