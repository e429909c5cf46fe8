"""Pull-style worker loop over the in-process broker.

Each poll takes one bounded batch (the queue's ``batch_size``) from every
configured queue and hands it to the :class:`BatchDispatcher`.  Messages
the dispatcher leaves unsettled get the transport default: ack after a
clean return, retry when the dispatcher raised.
"""

from __future__ import annotations

import asyncio

from queue_processor.dispatch.dispatcher import BatchDispatcher
from queue_processor.models.results import BatchProcessingResult
from queue_processor.providers.queue.memory_broker import MemoryQueueBroker
from queue_processor.utils.errors import UnsupportedQueueError
from queue_processor.utils.logging import get_logger

logger = get_logger(__name__)


class QueueWorker:
    def __init__(
        self,
        broker: MemoryQueueBroker,
        dispatcher: BatchDispatcher,
        poll_interval: float = 1.0,
    ) -> None:
        self._broker = broker
        self._dispatcher = dispatcher
        self._poll_interval = poll_interval

    async def run_once(self) -> list[BatchProcessingResult]:
        """Dispatch at most one batch per configured queue.

        Returns the results for the queues that had messages waiting.
        """
        results: list[BatchProcessingResult] = []
        for name, config in self._dispatcher.queues.items():
            batch = await self._broker.receive_batch(name, config.batch_size)
            if not len(batch):
                continue

            try:
                results.append(await self._dispatcher.dispatch(batch))
            except UnsupportedQueueError:
                # The dispatcher already acknowledged every message.
                logger.error("worker_unsupported_queue", queue=name)
            except Exception as exc:
                logger.exception("worker_batch_failed", queue=name, error=str(exc))
                self._broker.settle_remaining(batch, handler_failed=True)
            else:
                self._broker.settle_remaining(batch)
        return results

    async def drain(self, max_rounds: int = 100) -> list[BatchProcessingResult]:
        """Call :meth:`run_once` until every queue is empty or *max_rounds* is reached."""
        results: list[BatchProcessingResult] = []
        for _ in range(max_rounds):
            round_results = await self.run_once()
            if not round_results:
                break
            results.extend(round_results)
        return results

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        logger.info("worker_started", queues=sorted(self._dispatcher.queues), poll_interval=self._poll_interval)
        while not stop_event.is_set():
            processed = await self.run_once()
            if processed:
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("worker_stopped")
