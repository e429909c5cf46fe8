"""Batch dispatch: queue table, transport adapters and the dispatcher.

:class:`~queue_processor.dispatch.dispatcher.BatchDispatcher` is imported
from its module directly; the processors it drives depend on the queue
table defined here.
"""

from queue_processor.dispatch.queues import (
    BATCH_REPROCESSING_QUEUE,
    DEFAULT_QUEUE_CONFIGS,
    DOCUMENT_INGESTION_QUEUE,
    WEBHOOK_PROCESSING_QUEUE,
    QueueConfig,
)
from queue_processor.dispatch.transport import DeliveredMessage, Disposition, MessageBatch

__all__ = [
    "BATCH_REPROCESSING_QUEUE",
    "DEFAULT_QUEUE_CONFIGS",
    "DOCUMENT_INGESTION_QUEUE",
    "WEBHOOK_PROCESSING_QUEUE",
    "DeliveredMessage",
    "Disposition",
    "MessageBatch",
    "QueueConfig",
]
