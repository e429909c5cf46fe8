"""Processing results returned by processors and aggregated by the dispatcher.

``processing_time`` values are wall-clock milliseconds.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import Field

from queue_processor.models.wire import WireModel


class ErrorCode(str, Enum):
    """Machine-readable failure codes carried in :class:`ProcessingError`."""

    LOCK_ACQUISITION_FAILED = "LOCK_ACQUISITION_FAILED"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    WEBHOOK_PROCESSING_FAILED = "WEBHOOK_PROCESSING_FAILED"
    BATCH_PROCESSING_FAILED = "BATCH_PROCESSING_FAILED"
    DOCUMENT_UPDATE_FAILED = "DOCUMENT_UPDATE_FAILED"
    DOCUMENT_DELETE_FAILED = "DOCUMENT_DELETE_FAILED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    UNSUPPORTED_MESSAGE_TYPE = "UNSUPPORTED_MESSAGE_TYPE"
    UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


class ProcessingError(WireModel):
    code: ErrorCode
    message: str
    retryable: bool


class ProcessingResult(WireModel):
    """Outcome of one processor call for one message."""

    success: bool
    message_id: str
    processing_time: float = 0.0
    chunks_processed: int | None = None
    embeddings_generated: int | None = None
    error: ProcessingError | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        message_id: str,
        code: ErrorCode,
        message: str,
        retryable: bool,
        processing_time: float = 0.0,
    ) -> "ProcessingResult":
        return cls(
            success=False,
            message_id=message_id,
            processing_time=processing_time,
            error=ProcessingError(code=code, message=message, retryable=retryable),
        )

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)


class BatchError(WireModel):
    message_id: str
    error: str
    retryable: bool


class BatchProcessingResult(WireModel):
    """Aggregate of one delivered batch; ``success_count + failure_count == total_messages``."""

    queue: str
    total_messages: int
    success_count: int
    failure_count: int
    results: list[ProcessingResult] = Field(default_factory=list)
    total_processing_time: float = 0.0
    errors: list[BatchError] = Field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_messages == 0:
            return 1.0
        return self.success_count / self.total_messages


class DeadLetterStatus(str, Enum):
    FAILED = "failed"
    MANUAL_RETRY_PENDING = "manual_retry_pending"
    ABANDONED = "abandoned"


class DeadLetterFailure(WireModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    error: str
    stack_trace: str | None = None


class DeadLetterMessage(WireModel):
    """A message that exhausted its retry budget.

    ``original_message`` is the raw body as delivered, which may not
    validate as a :class:`~queue_processor.models.messages.QueueMessage`.
    """

    message_id: str
    queue: str
    original_message: dict[str, Any]
    failure_count: int
    last_failure_at: datetime
    failures: list[DeadLetterFailure] = Field(default_factory=list)
    status: DeadLetterStatus = DeadLetterStatus.FAILED
