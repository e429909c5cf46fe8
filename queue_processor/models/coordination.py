"""Coordination records owned by the Document Coordinator.

Three record kinds live in the coordinator's key-value store:

- :class:`DocumentLock` under ``lock:<documentId>`` -- TTL-bounded
  mutual-exclusion claim on one document.
- :class:`ProcessingState` under ``state:<documentId>`` -- resumable
  progress record for the current processing cycle.
- content-hash ownership under ``hash:<contentHash>`` -- the id of the
  first document that presented the hash (stored as a bare string).

All models are frozen; the coordinator produces new records with
``model_copy(update={...})`` or by re-validating a merged dict.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from queue_processor.models.wire import WireModel


# ---------------------------------------------------------------------------
# Locks
# ---------------------------------------------------------------------------
class LockType(str, Enum):
    """What the lock holder intends to do with the document."""

    PROCESSING = "processing"
    UPDATING = "updating"
    DELETING = "deleting"


class LockAction(str, Enum):
    ACQUIRED = "acquired"
    EXTENDED = "extended"


class DocumentLock(WireModel):
    """A TTL-bounded exclusive claim on one document id."""

    document_id: str
    lock_id: str
    lock_type: LockType
    acquired_at: datetime
    expires_at: datetime
    worker_id: str
    metadata: dict[str, Any] | None = None

    def is_expired(self, now: datetime) -> bool:
        # A lock whose expiry equals "now" is already reclaimable.
        return self.expires_at <= now

    def holder_summary(self) -> dict[str, Any]:
        """The subset of the lock reported to a conflicting caller."""
        return {
            "workerId": self.worker_id,
            "lockType": self.lock_type.value,
            "expiresAt": self.expires_at.isoformat(),
        }


class LockGrant(WireModel):
    """Successful outcome of an acquire call."""

    success: bool = True
    lock: DocumentLock
    action: LockAction


class LockStatus(WireModel):
    """Outcome of a check call; expired records report ``locked=False``."""

    locked: bool
    lock: DocumentLock | None = None


# ---------------------------------------------------------------------------
# Processing state
# ---------------------------------------------------------------------------
class ProcessingStatus(str, Enum):
    """Lifecycle of one processing cycle.

    ``queued -> processing -> completed | failed``; ``cancelled`` is only
    reached from an explicit cancellation (document deletion).
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED, ProcessingStatus.CANCELLED}
)


class ProcessingProgress(WireModel):
    current_step: str
    steps_completed: int = Field(ge=0)
    total_steps: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)


class ProcessingState(WireModel):
    """Progress record for one document's current processing cycle.

    ``last_updated_at`` is always stamped by the coordinator at write
    time; a value supplied by the caller is ignored.
    """

    document_id: str
    status: ProcessingStatus
    progress: ProcessingProgress
    started_at: datetime
    last_updated_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None


class StateUpdate(WireModel):
    """Partial processing state submitted by a worker.

    Only the fields explicitly set are merged over the stored record.
    """

    document_id: str
    status: ProcessingStatus | None = None
    progress: ProcessingProgress | None = None
    started_at: datetime | None = None
    last_updated_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None

    def changes(self) -> dict[str, Any]:
        """Explicitly set fields, minus the ones the coordinator owns."""
        return self.model_dump(
            exclude_unset=True,
            exclude={"document_id", "last_updated_at"},
        )


# ---------------------------------------------------------------------------
# Deduplication / cleanup
# ---------------------------------------------------------------------------
class DeduplicationAction(str, Enum):
    SKIP = "skip"
    UPDATE = "update"
    CREATE_NEW = "create_new"


class DeduplicationResult(WireModel):
    is_duplicate: bool
    existing_document_id: str | None = None
    content_hash: str
    similarity: float | None = None
    action: DeduplicationAction
    reason: str | None = None


class CleanupResult(WireModel):
    """Counts from one cleanup sweep.  Hash records are counted, never deleted."""

    expired_locks: int = 0
    old_states: int = 0
    old_hashes: int = 0
