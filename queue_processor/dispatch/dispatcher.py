"""Batch dispatcher: one delivered batch in, one settlement per message out.

Flow for a batch from queue ``Q``::

    Q unknown ──→ ack every message, raise UnsupportedQueueError
      │
    split into groups of Q.concurrency (1 when Q is sequential)
      │
    per message (concurrently within a group):
      body ──(missing type)──→ Q's primary type
      body ──(fails validation)──→ INVALID_PAYLOAD, not retryable
      type ──(not accepted on Q)──→ UNSUPPORTED_MESSAGE_TYPE, not retryable
      wrap in envelope {priority medium, retryCount = attempts, maxRetries = Q}
      processor.process(message)
      │
    settle:  success → ack    retryable failure → retry    other failure → ack
             processor raised → retry, recorded as UNHANDLED_EXCEPTION

A group finishes completely before the next one starts, so no more than
``Q.concurrency`` messages are in flight at once.
"""

from __future__ import annotations

import time
from typing import Any, Mapping

from pydantic import ValidationError

from queue_processor.context import QueueProcessorContext
from queue_processor.dispatch.queues import DEFAULT_QUEUE_CONFIGS, QueueConfig
from queue_processor.dispatch.transport import DeliveredMessage, MessageBatch
from queue_processor.models.messages import MessageMetadata, MessageType, Priority, QueueMessage
from queue_processor.models.results import (
    BatchError,
    BatchProcessingResult,
    ErrorCode,
    ProcessingResult,
)
from queue_processor.processors import (
    BaseProcessor,
    BatchReprocessProcessor,
    DocumentLifecycleProcessor,
    DocumentProcessor,
    WebhookProcessor,
)
from queue_processor.utils.concurrency import gather_in_groups
from queue_processor.utils.errors import UnsupportedQueueError
from queue_processor.utils.logging import get_logger

logger = get_logger(__name__)


def default_processors(ctx: QueueProcessorContext) -> dict[MessageType, BaseProcessor]:
    """One processor instance per message type, sharing *ctx*."""
    registry: dict[MessageType, BaseProcessor] = {}
    for processor in (
        DocumentProcessor(ctx),
        DocumentLifecycleProcessor(ctx),
        WebhookProcessor(ctx),
        BatchReprocessProcessor(ctx),
    ):
        for message_type in processor.handles:
            registry[message_type] = processor
    return registry


class BatchDispatcher:
    """Routes delivered batches to processors and settles every message.

    Parameters
    ----------
    ctx:
        Shared processor context (logging, metrics, collaborators).
    queues:
        Queue table keyed by queue name; defaults to the built-in table.
    processors:
        Processor per message type; defaults to :func:`default_processors`.
    """

    def __init__(
        self,
        ctx: QueueProcessorContext,
        queues: Mapping[str, QueueConfig] | None = None,
        processors: Mapping[MessageType, BaseProcessor] | None = None,
    ) -> None:
        self._ctx = ctx
        self._queues = dict(queues or DEFAULT_QUEUE_CONFIGS)
        self._processors = dict(processors) if processors is not None else default_processors(ctx)

    @property
    def queues(self) -> dict[str, QueueConfig]:
        return dict(self._queues)

    def queue_config(self, queue_name: str) -> QueueConfig | None:
        return self._queues.get(queue_name)

    async def dispatch(self, batch: MessageBatch) -> BatchProcessingResult:
        """Process every message in *batch* and settle each one exactly once.

        Raises
        ------
        UnsupportedQueueError
            If the batch comes from a queue with no configuration.  Every
            message is acknowledged first so it is not redelivered.
        """
        config = self._queues.get(batch.queue)
        if config is None:
            logger.error("unsupported_queue", queue=batch.queue, messageCount=len(batch))
            batch.ack_all()
            raise UnsupportedQueueError(f"Unsupported queue: {batch.queue}")

        start = time.perf_counter()
        self._ctx.log_event(
            "batch_started",
            queue=batch.queue,
            messageCount=len(batch),
            concurrency=config.concurrency,
        )

        async def _handle(delivered: DeliveredMessage) -> ProcessingResult:
            return await self._process_one(delivered, config)

        outcomes = await gather_in_groups(batch.messages, _handle, config.group_size)

        results: list[ProcessingResult] = []
        errors: list[BatchError] = []
        for delivered, outcome in zip(batch.messages, outcomes):
            if isinstance(outcome, BaseException):
                error_message = str(outcome) or type(outcome).__name__
                logger.error(
                    "message_processing_exception",
                    queue=batch.queue,
                    messageId=delivered.id,
                    error=error_message,
                    exc_info=outcome,
                )
                outcome = ProcessingResult.failure(
                    delivered.id,
                    ErrorCode.UNHANDLED_EXCEPTION,
                    error_message,
                    retryable=True,
                )

            results.append(outcome)
            if outcome.success:
                delivered.ack()
                continue

            retryable = outcome.retryable
            error_message = outcome.error.message if outcome.error else "Processing failed"
            errors.append(BatchError(message_id=delivered.id, error=error_message, retryable=retryable))
            if retryable:
                delivered.retry(error_message)
            else:
                delivered.ack()

        success_count = sum(1 for r in results if r.success)
        result = BatchProcessingResult(
            queue=batch.queue,
            total_messages=len(results),
            success_count=success_count,
            failure_count=len(results) - success_count,
            results=results,
            total_processing_time=round((time.perf_counter() - start) * 1000, 2),
            errors=errors,
        )

        self._ctx.log_event(
            "batch_completed",
            queue=batch.queue,
            totalMessages=result.total_messages,
            successCount=result.success_count,
            failureCount=result.failure_count,
            processingTime=result.total_processing_time,
        )
        self._ctx.log_metric(
            "batch_processing_time",
            result.total_processing_time,
            queue_type=batch.queue,
            message_count=str(result.total_messages),
            success_rate=f"{result.success_rate:.2f}",
        )
        return result

    async def _process_one(self, delivered: DeliveredMessage, config: QueueConfig) -> ProcessingResult:
        body = delivered.body
        if not isinstance(body, dict):
            return ProcessingResult.failure(
                delivered.id,
                ErrorCode.INVALID_PAYLOAD,
                "Message body must be a JSON object",
                retryable=False,
            )

        payload: dict[str, Any] = dict(body)
        payload.setdefault("type", config.primary_type.value)

        try:
            message = QueueMessage.model_validate(
                {
                    "type": payload["type"],
                    "payload": payload,
                    "metadata": MessageMetadata(
                        priority=Priority.MEDIUM,
                        retry_count=delivered.attempts,
                        max_retries=config.max_retries,
                        correlation_id=delivered.id,
                    ),
                }
            )
        except ValidationError as exc:
            logger.warning(
                "invalid_message_payload",
                queue=config.name,
                messageId=delivered.id,
                errors=exc.error_count(),
            )
            return ProcessingResult.failure(
                delivered.id,
                ErrorCode.INVALID_PAYLOAD,
                _summarise_validation_error(exc),
                retryable=False,
            )

        if not config.accepts(message.type):
            return ProcessingResult.failure(
                delivered.id,
                ErrorCode.UNSUPPORTED_MESSAGE_TYPE,
                f"Message type {message.type.value} is not accepted on queue {config.name}",
                retryable=False,
            )

        processor = self._processors.get(message.type)
        if processor is None:
            return ProcessingResult.failure(
                delivered.id,
                ErrorCode.UNSUPPORTED_MESSAGE_TYPE,
                f"No processor registered for {message.type.value}",
                retryable=False,
            )
        return await processor.process(message)


def _summarise_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid payload at {location or '<root>'}: {first.get('msg', 'validation error')}"
