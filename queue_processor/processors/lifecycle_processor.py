"""Update and delete handling for already-ingested documents.

Both run on the document-ingestion queue under a short-lived lock
(``updating`` / ``deleting``) so they never interleave with an ingestion
of the same document.

``document_update``
    A text change re-enqueues the document for a full ingestion (forced,
    since the new text must be re-chunked).  A metadata or ACL-only change
    is applied in place to the stored original, its chunk blobs and its
    vectors.

``document_delete``
    A hard delete removes vectors, chunk blobs and the stored original.
    A soft delete keeps everything and flags the vectors ``deleted``.
    Either way the processing state becomes ``cancelled``.
"""

from __future__ import annotations

import time
from typing import Any

from queue_processor.models.coordination import (
    LockType,
    ProcessingProgress,
    ProcessingStatus,
    StateUpdate,
)
from queue_processor.models.messages import (
    Document,
    DocumentDeletePayload,
    DocumentUpdatePayload,
    MessageType,
    QueueMessage,
)
from queue_processor.models.results import ErrorCode, ProcessingResult
from queue_processor.processors.base import (
    BaseProcessor,
    chunk_index_from_key,
    chunk_prefix,
    document_key,
    epoch_ms,
    utcnow,
)
from queue_processor.utils.errors import (
    DEFAULT_TRANSIENT_PATTERNS,
    LockConflictError,
    ProcessingFailedError,
    is_retryable,
)

# Chunk-level metadata written at ingestion; document metadata changes never overwrite these.
RESERVED_CHUNK_FIELDS = frozenset({"source", "url", "chunk_index", "doc_id", "timestamp"})


class DocumentLifecycleProcessor(BaseProcessor):
    handles = (MessageType.DOCUMENT_UPDATE, MessageType.DOCUMENT_DELETE)

    async def process(self, message: QueueMessage) -> ProcessingResult:
        payload = message.payload
        start = time.perf_counter()

        if isinstance(payload, DocumentUpdatePayload):
            lock_type, code, event = LockType.UPDATING, ErrorCode.DOCUMENT_UPDATE_FAILED, "document_update"
        elif isinstance(payload, DocumentDeletePayload):
            lock_type, code, event = LockType.DELETING, ErrorCode.DOCUMENT_DELETE_FAILED, "document_delete"
        else:
            return self._unexpected_payload(message)

        document_id = payload.document_id
        try:
            lock = await self._acquire(document_id, lock_type)
        except LockConflictError as exc:
            return ProcessingResult.failure(
                message.message_id,
                ErrorCode.LOCK_ACQUISITION_FAILED,
                exc.message,
                retryable=True,
                processing_time=self._elapsed_ms(start),
            )

        try:
            try:
                if isinstance(payload, DocumentUpdatePayload):
                    metadata = await self._update(payload)
                else:
                    metadata = await self._delete(payload)
            finally:
                await self._release(lock)
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            self._ctx.log_event(f"{event}_failed", documentId=document_id, error=error_message)
            return ProcessingResult.failure(
                message.message_id,
                code,
                error_message,
                retryable=is_retryable(exc, DEFAULT_TRANSIENT_PATTERNS),
                processing_time=self._elapsed_ms(start),
            )

        processing_time = self._elapsed_ms(start)
        self._ctx.log_event(f"{event}_completed", documentId=document_id, processingTime=processing_time, **metadata)
        return ProcessingResult(
            success=True,
            message_id=message.message_id,
            processing_time=processing_time,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def _update(self, payload: DocumentUpdatePayload) -> dict[str, Any]:
        changes = payload.changes
        original = await self._load_document(payload.document_id)

        metadata_changes: dict[str, Any] = dict(changes.metadata or {})
        if changes.acl is not None:
            metadata_changes["acl"] = changes.acl

        if changes.text is not None:
            base = original or Document(id=payload.document_id, text=changes.text, source="unknown")
            updated = base.model_copy(
                update={"text": changes.text, "metadata": {**base.metadata, **metadata_changes}}
            )
            queued_id = await self._queue_for_ingestion(updated, force_reprocess=True)
            return {
                "action": "requeued_for_ingestion",
                "queuedMessageId": queued_id,
                "incrementalUpdate": payload.incremental_update,
            }

        if original is None:
            raise ProcessingFailedError(f"Document not found: {payload.document_id}")
        if not metadata_changes:
            return {"action": "no_changes"}

        metadata_changes["updatedAt"] = epoch_ms()
        await self._save_document(original.model_copy(update={"metadata": {**original.metadata, **metadata_changes}}))

        chunk_changes = {k: v for k, v in metadata_changes.items() if k not in RESERVED_CHUNK_FIELDS}
        chunks = 0
        for key in await self._ctx.blob_store.list_keys(chunk_prefix(payload.document_id)):
            if chunk_index_from_key(payload.document_id, key) is None:
                continue
            blob = await self._ctx.blob_store.get(key)
            if blob is not None:
                await self._ctx.blob_store.put(key, blob.content, {**blob.metadata, **chunk_changes}, blob.content_type)
                chunks += 1
        for vector_id in await self._ctx.vector_index.ids_for_document(payload.document_id):
            await self._ctx.vector_index.update_metadata(vector_id, chunk_changes)

        return {"action": "metadata_updated", "chunksUpdated": chunks}

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def _delete(self, payload: DocumentDeletePayload) -> dict[str, Any]:
        document_id = payload.document_id
        vector_ids = await self._ctx.vector_index.ids_for_document(document_id)

        if payload.hard_delete:
            removed_vectors = await self._ctx.vector_index.delete(vector_ids) if vector_ids else 0
            removed_blobs = 0
            for key in await self._ctx.blob_store.list_keys(chunk_prefix(document_id)):
                if chunk_index_from_key(document_id, key) is not None and await self._ctx.blob_store.delete(key):
                    removed_blobs += 1
            if await self._ctx.blob_store.delete(document_key(document_id)):
                removed_blobs += 1
            result: dict[str, Any] = {
                "action": "hard_deleted",
                "vectorsRemoved": removed_vectors,
                "blobsRemoved": removed_blobs,
            }
        else:
            flag = {"deleted": True, "deletedAt": epoch_ms()}
            flagged = 0
            for vector_id in vector_ids:
                if await self._ctx.vector_index.update_metadata(vector_id, flag):
                    flagged += 1
            result = {"action": "soft_deleted", "vectorsFlagged": flagged}

        now = utcnow()
        await self._ctx.get_coordinator(document_id).update_state(
            StateUpdate(
                document_id=document_id,
                status=ProcessingStatus.CANCELLED,
                progress=ProcessingProgress(current_step="deleted", steps_completed=0, total_steps=0, percentage=0),
                started_at=now,
                completed_at=now,
                metadata={"hardDelete": payload.hard_delete, **({"reason": payload.reason} if payload.reason else {})},
            )
        )
        return result
