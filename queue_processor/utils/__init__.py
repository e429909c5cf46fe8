"""Utility modules for the queue processor.

- **concurrency** -- per-key asyncio locks and the fixed-group fan-out
  used by the dispatcher and the reprocess processor.
- **errors** -- exception hierarchy rooted at QueueProcessorError, plus
  transient/permanent classification for retry decisions.
- **logging** -- structlog setup with a dual renderer: coloured console
  output in development, JSON in production.
- **metrics** -- in-process metric series behind ``GET /metrics``.
- **text** -- whitespace cleanup, SHA-256 content hashing, HTML to text
  and the word-window chunker.
"""

# -- Concurrency -----------------------------------------------------------
from queue_processor.utils.concurrency import KeyedLock, gather_in_groups, partition

# -- Exception hierarchy ---------------------------------------------------
from queue_processor.utils.errors import (
    BatchPartialFailureError,
    ConfigurationError,
    ErrorKind,
    InvalidPayloadError,
    LockConflictError,
    LockNotFoundError,
    LockReleaseForbiddenError,
    ProcessingFailedError,
    ProviderRejectedError,
    ProviderUnavailableError,
    QueueProcessorError,
    RateLimitError,
    StateTransitionError,
    UnsupportedQueueError,
    classify_error,
    is_retryable,
)

# -- Structured logging ----------------------------------------------------
from queue_processor.utils.logging import bind_worker_context, configure_logging, get_logger

# -- Metrics ---------------------------------------------------------------
from queue_processor.utils.metrics import MetricSeries, MetricsRecorder

# -- Text ------------------------------------------------------------------
from queue_processor.utils.text import TextChunker, clean_text, content_hash, html_to_text

__all__ = [
    "BatchPartialFailureError",
    "ConfigurationError",
    "ErrorKind",
    "InvalidPayloadError",
    "KeyedLock",
    "LockConflictError",
    "LockNotFoundError",
    "LockReleaseForbiddenError",
    "MetricSeries",
    "MetricsRecorder",
    "ProcessingFailedError",
    "ProviderRejectedError",
    "ProviderUnavailableError",
    "QueueProcessorError",
    "RateLimitError",
    "StateTransitionError",
    "TextChunker",
    "UnsupportedQueueError",
    "bind_worker_context",
    "classify_error",
    "clean_text",
    "configure_logging",
    "content_hash",
    "gather_in_groups",
    "get_logger",
    "html_to_text",
    "is_retryable",
    "partition",
]
