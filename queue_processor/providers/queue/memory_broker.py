"""In-process queue broker with redelivery and dead letters.

Implements :class:`IQueueProducer` for the processors and the consumer
side used by :class:`~queue_processor.runtime.worker.QueueWorker`:

- :meth:`MemoryQueueBroker.receive_batch` hands out up to N messages as a
  :class:`MessageBatch`; delivered messages are in flight until settled.
- ``ack()`` drops the message.  ``retry()`` puts it back at the tail with
  ``attempts + 1``, unless it has already been retried ``max_retries``
  times, in which case it becomes a :class:`DeadLetterMessage`.
- :meth:`MemoryQueueBroker.settle_remaining` applies the transport default
  to anything the handler left pending: ack on a clean return, retry when
  the handler raised.
"""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from queue_processor.dispatch.queues import DEFAULT_QUEUE_CONFIGS
from queue_processor.dispatch.transport import DeliveredMessage, Disposition, MessageBatch
from queue_processor.interfaces.queue_producer import IQueueProducer
from queue_processor.models.results import DeadLetterFailure, DeadLetterMessage

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class _QueuedMessage:
    id: str
    body: Any
    attempts: int = 0
    failures: list[DeadLetterFailure] = field(default_factory=list)


class MemoryQueueBroker(IQueueProducer):
    """Dict-of-deques broker shared by producers and the worker loop.

    Parameters
    ----------
    max_retries:
        Retry budget per queue name.  Defaults to the built-in queue table;
        unknown queues get 3.
    """

    def __init__(self, max_retries: dict[str, int] | None = None) -> None:
        if max_retries is None:
            max_retries = {name: cfg.max_retries for name, cfg in DEFAULT_QUEUE_CONFIGS.items()}
        self._max_retries = dict(max_retries)
        self._ready: dict[str, deque[_QueuedMessage]] = {}
        self._in_flight: dict[str, _QueuedMessage] = {}
        self._dead_letters: dict[str, list[DeadLetterMessage]] = {}

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def send(self, queue_name: str, body: dict[str, Any]) -> str:
        message_id = uuid.uuid4().hex
        self._ready.setdefault(queue_name, deque()).append(_QueuedMessage(id=message_id, body=body))
        logger.debug("message_enqueued", queue=queue_name, message_id=message_id)
        return message_id

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def receive_batch(self, queue_name: str, max_messages: int) -> MessageBatch:
        ready = self._ready.setdefault(queue_name, deque())
        delivered: list[DeliveredMessage] = []

        while ready and len(delivered) < max_messages:
            queued = ready.popleft()
            queued.attempts += 1
            self._in_flight[queued.id] = queued
            delivered.append(
                DeliveredMessage(
                    message_id=queued.id,
                    body=queued.body,
                    attempts=queued.attempts,
                    on_settle=self._settler(queue_name),
                )
            )

        return MessageBatch(queue=queue_name, messages=delivered)

    def settle_remaining(self, batch: MessageBatch, handler_failed: bool = False) -> None:
        for message in batch.messages:
            if message.disposition is Disposition.PENDING:
                if handler_failed:
                    message.retry("batch handler raised")
                else:
                    message.ack()

    def _settler(self, queue_name: str):  # noqa: ANN202
        def _on_settle(message: DeliveredMessage, disposition: Disposition, reason: str | None) -> None:
            queued = self._in_flight.pop(message.id, None)
            if queued is None:
                return
            if disposition is Disposition.ACK:
                return

            queued.failures.append(DeadLetterFailure(error=reason or "retry requested"))
            max_retries = self._max_retries.get(queue_name, 3)
            if queued.attempts > max_retries:
                self._dead_letter(queue_name, queued)
            else:
                self._ready.setdefault(queue_name, deque()).append(queued)

        return _on_settle

    def _dead_letter(self, queue_name: str, queued: _QueuedMessage) -> None:
        body = queued.body if isinstance(queued.body, dict) else {"raw": queued.body}
        record = DeadLetterMessage(
            message_id=queued.id,
            queue=queue_name,
            original_message=body,
            failure_count=len(queued.failures),
            last_failure_at=datetime.now(tz=timezone.utc),
            failures=list(queued.failures),
        )
        self._dead_letters.setdefault(queue_name, []).append(record)
        logger.warning(
            "message_dead_lettered",
            queue=queue_name,
            message_id=queued.id,
            attempts=queued.attempts,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def pending(self, queue_name: str) -> int:
        return len(self._ready.get(queue_name, ()))

    def in_flight(self) -> int:
        return len(self._in_flight)

    def dead_letters(self, queue_name: str | None = None) -> list[DeadLetterMessage]:
        if queue_name is not None:
            return list(self._dead_letters.get(queue_name, []))
        return [record for records in self._dead_letters.values() for record in records]

    def queue_names(self) -> list[str]:
        return sorted(self._ready)
