"""Queue processor domain models: re-exports all public model classes.

The models are organised by concern:
    - coordination.py - locks, processing state, dedup and cleanup records
    - messages.py     - queue envelope and the five payload variants
    - results.py      - per-message and per-batch results, dead letters
    - storage.py      - blob and vector records held by collaborators
    - wire.py         - camelCase JSON base model
"""

from __future__ import annotations

from queue_processor.models.coordination import (
    CleanupResult,
    DeduplicationAction,
    DeduplicationResult,
    DocumentLock,
    LockAction,
    LockGrant,
    LockStatus,
    LockType,
    ProcessingProgress,
    ProcessingState,
    ProcessingStatus,
    StateUpdate,
)
from queue_processor.models.messages import (
    BatchReprocessPayload,
    Document,
    DocumentChanges,
    DocumentDeletePayload,
    DocumentIngestionOptions,
    DocumentIngestionPayload,
    DocumentUpdatePayload,
    EventType,
    MessageMetadata,
    MessageType,
    Priority,
    QueueMessage,
    ReprocessOptions,
    ReprocessReason,
    SourceType,
    WebhookSyncPayload,
)
from queue_processor.models.results import (
    BatchError,
    BatchProcessingResult,
    DeadLetterFailure,
    DeadLetterMessage,
    DeadLetterStatus,
    ErrorCode,
    ProcessingError,
    ProcessingResult,
)
from queue_processor.models.storage import StoredBlob, VectorRecord
from queue_processor.models.wire import WireModel

__all__ = [
    "BatchError",
    "BatchProcessingResult",
    "BatchReprocessPayload",
    "CleanupResult",
    "DeadLetterFailure",
    "DeadLetterMessage",
    "DeadLetterStatus",
    "DeduplicationAction",
    "DeduplicationResult",
    "Document",
    "DocumentChanges",
    "DocumentDeletePayload",
    "DocumentIngestionOptions",
    "DocumentIngestionPayload",
    "DocumentLock",
    "DocumentUpdatePayload",
    "ErrorCode",
    "EventType",
    "LockAction",
    "LockGrant",
    "LockStatus",
    "LockType",
    "MessageMetadata",
    "MessageType",
    "Priority",
    "ProcessingError",
    "ProcessingProgress",
    "ProcessingResult",
    "ProcessingState",
    "ProcessingStatus",
    "QueueMessage",
    "ReprocessOptions",
    "ReprocessReason",
    "SourceType",
    "StateUpdate",
    "StoredBlob",
    "VectorRecord",
    "WebhookSyncPayload",
    "WireModel",
]
