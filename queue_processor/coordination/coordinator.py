"""Document Coordinator: locks, processing state and content-hash dedup.

The coordinator is the only component allowed to mutate the three
shared record kinds.  Every operation on one key behaves as if it ran
alone:

- inside one process, a :class:`KeyedLock` serialises all operations on
  the same key (``lock:<id>``, ``state:<id>`` or ``hash:<hash>``) while
  operations on different keys proceed in parallel;
- across processes sharing a store, every write is a conditional write
  (compare-and-set against the value that was read, insert-if-absent,
  delete-if-unchanged), so a concurrent writer makes the operation
  re-read instead of overwriting.

# ─── LOCK LIFECYCLE ────────────────────────────────────────────────────
#
#   acquire (no lock / expired) ──→ new lock, action="acquired"
#   acquire (same worker)       ──→ expiry pushed to now+ttl, action="extended"
#   acquire (other worker)      ──→ LockConflictError (409) with holder summary
#   release (ids match)         ──→ record deleted, "lock_released" logged
#   release (no record)         ──→ LockNotFoundError (404)
#   release (ids differ)        ──→ LockReleaseForbiddenError (403)
#   cleanup                     ──→ expired records deleted
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from queue_processor.coordination.notifier import StateChangeNotifier
from queue_processor.interfaces.kv_store import IKeyValueStore
from queue_processor.models.coordination import (
    CleanupResult,
    DeduplicationAction,
    DeduplicationResult,
    DocumentLock,
    LockAction,
    LockGrant,
    LockStatus,
    LockType,
    ProcessingState,
    ProcessingStatus,
    StateUpdate,
)
from queue_processor.utils.concurrency import KeyedLock
from queue_processor.utils.errors import (
    LockConflictError,
    LockNotFoundError,
    LockReleaseForbiddenError,
    ProviderUnavailableError,
    StateTransitionError,
)
from queue_processor.utils.logging import get_logger

LOCK_PREFIX = "lock:"
STATE_PREFIX = "state:"
HASH_PREFIX = "hash:"

DEFAULT_LOCK_TTL_SECONDS = 300
DEFAULT_STATE_RETENTION = timedelta(days=7)

# Conditional writes that lose a race re-read and try again this many times.
_MAX_WRITE_ATTEMPTS = 5

# Fields a fresh state record starts with when no previous record exists.
_FRESH_PROGRESS: dict[str, Any] = {
    "current_step": "queued",
    "steps_completed": 0,
    "total_steps": 0,
    "percentage": 0,
}

# Required state fields that an explicit null in a partial update must not erase.
_REQUIRED_STATE_FIELDS = frozenset({"status", "progress", "started_at"})


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class DocumentCoordinator:
    """Single source of truth for document locks, processing state and content hashes.

    Parameters
    ----------
    store:
        Key-value store holding every record as JSON.
    clock:
        Returns the current UTC time.  Injected by tests to move time.
    default_ttl_seconds:
        Lock TTL used when the caller does not pass one.
    state_retention:
        Processing states untouched for longer than this are removed by
        :meth:`cleanup`.
    notifier:
        Receives every successful state write.
    """

    def __init__(
        self,
        store: IKeyValueStore,
        *,
        clock: Callable[[], datetime] | None = None,
        default_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
        state_retention: timedelta = DEFAULT_STATE_RETENTION,
        notifier: StateChangeNotifier | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or _utcnow
        self._default_ttl = default_ttl_seconds
        self._state_retention = state_retention
        self._notifier = notifier or StateChangeNotifier()
        self._keys = KeyedLock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def notifier(self) -> StateChangeNotifier:
        return self._notifier

    @property
    def store(self) -> IKeyValueStore:
        return self._store

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    async def acquire_lock(
        self,
        document_id: str,
        worker_id: str,
        lock_type: LockType = LockType.PROCESSING,
        ttl_seconds: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LockGrant:
        """Grant, extend or refuse an exclusive lock on *document_id*.

        Raises
        ------
        LockConflictError
            If a different worker holds an unexpired lock.
        """
        ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else self._default_ttl)
        key = LOCK_PREFIX + document_id

        async with self._keys.hold(key):
            for _ in range(_MAX_WRITE_ATTEMPTS):
                now = self._clock()
                raw = await self._store.get(key)
                existing = self._parse(DocumentLock, raw, key)

                if existing is not None and not existing.is_expired(now):
                    if existing.worker_id != worker_id:
                        raise LockConflictError(
                            message="Document is locked by another worker",
                            provider_name="coordinator",
                            existing_lock=existing.holder_summary(),
                        )
                    lock = existing.model_copy(update={"expires_at": now + ttl})
                    action = LockAction.EXTENDED
                else:
                    lock = DocumentLock(
                        document_id=document_id,
                        lock_id=str(uuid.uuid4()),
                        lock_type=lock_type,
                        acquired_at=now,
                        expires_at=now + ttl,
                        worker_id=worker_id,
                        metadata=metadata,
                    )
                    action = LockAction.ACQUIRED

                if await self._store.compare_and_set(key, raw, self._dump(lock)):
                    self._logger.info(
                        "lock_acquired",
                        documentId=document_id,
                        lockId=lock.lock_id,
                        lockType=lock.lock_type.value,
                        workerId=worker_id,
                        action=action.value,
                        expiresAt=lock.expires_at.isoformat(),
                    )
                    return LockGrant(lock=lock, action=action)

        raise self._contention(key)

    async def release_lock(self, document_id: str, lock_id: str, worker_id: str) -> DocumentLock:
        """Delete the lock if *lock_id* and *worker_id* both match the stored record.

        Returns the released lock.

        Raises
        ------
        LockNotFoundError
            If no lock record exists.
        LockReleaseForbiddenError
            If either id does not match.
        """
        key = LOCK_PREFIX + document_id

        async with self._keys.hold(key):
            raw = await self._store.get(key)
            lock = self._parse(DocumentLock, raw, key)
            if lock is None:
                raise LockNotFoundError(provider_name="coordinator")
            if lock.lock_id != lock_id or lock.worker_id != worker_id:
                raise LockReleaseForbiddenError(provider_name="coordinator")

            if not await self._store.delete_if_equal(key, raw):
                # Replaced by another process after it expired.
                raise LockNotFoundError(provider_name="coordinator")

        held_for = self._clock() - lock.acquired_at
        self._logger.info(
            "lock_released",
            documentId=document_id,
            lockId=lock_id,
            workerId=worker_id,
            heldFor=round(held_for.total_seconds() * 1000),
        )
        return lock

    async def check_lock(self, document_id: str) -> LockStatus:
        """Report whether an unexpired lock exists; expired records count as unlocked."""
        key = LOCK_PREFIX + document_id
        lock = self._parse(DocumentLock, await self._store.get(key), key)
        if lock is None or lock.is_expired(self._clock()):
            return LockStatus(locked=False)
        return LockStatus(locked=True, lock=lock)

    # ------------------------------------------------------------------
    # Processing state
    # ------------------------------------------------------------------

    async def update_state(self, update: StateUpdate) -> ProcessingState:
        """Shallow-merge *update* over the stored state and stamp ``last_updated_at``.

        Lock possession is not checked.  A stored state in a terminal
        status only accepts an update that starts a new cycle, i.e. one
        carrying a ``started_at`` different from the stored one.

        Raises
        ------
        StateTransitionError
            If the stored state is terminal and the update does not start
            a new cycle.
        """
        document_id = update.document_id
        key = STATE_PREFIX + document_id
        changes = {
            field: value
            for field, value in update.changes().items()
            if not (value is None and field in _REQUIRED_STATE_FIELDS)
        }

        written: ProcessingState | None = None
        async with self._keys.hold(key):
            for _ in range(_MAX_WRITE_ATTEMPTS):
                raw = await self._store.get(key)
                existing = self._parse(ProcessingState, raw, key)
                now = self._clock()

                if existing is None:
                    merged: dict[str, Any] = {
                        "document_id": document_id,
                        "status": ProcessingStatus.QUEUED,
                        "progress": dict(_FRESH_PROGRESS),
                        "started_at": now,
                    }
                else:
                    new_cycle = "started_at" in changes and changes["started_at"] != existing.started_at
                    if existing.status.is_terminal and not new_cycle:
                        raise StateTransitionError(
                            message=(
                                f"Processing state for {document_id} is {existing.status.value}; "
                                "start a new cycle with a new startedAt"
                            ),
                            provider_name="coordinator",
                        )
                    merged = existing.model_dump()
                    if new_cycle:
                        # A fresh cycle does not inherit the previous cycle's outcome.
                        merged.pop("completed_at", None)
                        merged.pop("error", None)

                merged.update(changes)
                merged["document_id"] = document_id
                merged["last_updated_at"] = now
                state = ProcessingState.model_validate(merged)

                if await self._store.compare_and_set(key, raw, self._dump(state)):
                    written = state
                    break

        if written is None:
            raise self._contention(key)
        # Listeners run outside the key lock so they may write this state again.
        await self._notifier.notify(written)
        return written

    async def get_state(self, document_id: str) -> ProcessingState | None:
        key = STATE_PREFIX + document_id
        return self._parse(ProcessingState, await self._store.get(key), key)

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    async def deduplicate(self, document_id: str, content_hash: str) -> DeduplicationResult:
        """Claim *content_hash* for *document_id*, or report the document that owns it.

        The same document presenting a hash it already owns is not a duplicate.
        """
        key = HASH_PREFIX + content_hash

        async with self._keys.hold(key):
            owner = await self._store.put_if_absent(key, document_id)

        if owner is not None and owner != document_id:
            self._logger.info(
                "duplicate_content_detected",
                documentId=document_id,
                existingDocumentId=owner,
                contentHash=content_hash,
            )
            return DeduplicationResult(
                is_duplicate=True,
                existing_document_id=owner,
                content_hash=content_hash,
                action=DeduplicationAction.SKIP,
                reason="Identical content hash found",
            )

        return DeduplicationResult(
            is_duplicate=False,
            content_hash=content_hash,
            action=DeduplicationAction.CREATE_NEW,
        )

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup(self) -> CleanupResult:
        """Delete expired locks and states older than the retention window.

        Each deletion re-checks its own condition under the key's lock and
        only removes the exact record that was inspected, so cleanup can
        run alongside normal traffic.  Hash records are counted only.
        """
        expired_locks = 0
        old_states = 0

        for key, _ in await self._store.items(LOCK_PREFIX):
            async with self._keys.hold(key):
                raw = await self._store.get(key)
                lock = self._parse(DocumentLock, raw, key)
                if raw is not None and (lock is None or lock.is_expired(self._clock())):
                    if await self._store.delete_if_equal(key, raw):
                        expired_locks += 1

        for key, _ in await self._store.items(STATE_PREFIX):
            async with self._keys.hold(key):
                raw = await self._store.get(key)
                state = self._parse(ProcessingState, raw, key)
                cutoff = self._clock() - self._state_retention
                if raw is not None and (state is None or state.last_updated_at < cutoff):
                    if await self._store.delete_if_equal(key, raw):
                        old_states += 1

        old_hashes = len(await self._store.items(HASH_PREFIX))

        result = CleanupResult(
            expired_locks=expired_locks,
            old_states=old_states,
            old_hashes=old_hashes,
        )
        self._logger.info(
            "cleanup_completed",
            expiredLocks=expired_locks,
            oldStates=old_states,
            oldHashes=old_hashes,
        )
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _dump(record: DocumentLock | ProcessingState) -> str:
        return record.model_dump_json(by_alias=True, exclude_none=True)

    def _parse(self, model: type, raw: str | None, key: str) -> Any:
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            # Unreadable records are treated as absent and get overwritten.
            self._logger.warning("coordinator_record_unreadable", key=key, error=str(exc))
            return None

    @staticmethod
    def _contention(key: str) -> ProviderUnavailableError:
        return ProviderUnavailableError(
            message=f"Concurrent writers kept changing {key}; try again",
            provider_name="coordinator",
        )
