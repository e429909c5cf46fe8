"""Batch reprocessing processor.

Splits ``documentIds`` into sub-batches (5 by default), runs each
sub-batch concurrently and pauses between sub-batches (1s by default) to
stay under downstream rate limits.  What happens per document depends on
the reason:

- ``schema_change``   -- load the stored original, stamp ``schemaVersion``
  and ``transformedAt``, and re-enqueue it for ingestion.
- ``model_update``    -- re-embed every stored chunk in place; chunk
  metadata is left untouched.
- ``policy_change``   -- rewrite the ACL and ``policyVersion`` on the
  stored original, its chunks and their vectors.
- ``manual_reindex``  -- re-enqueue the stored original for ingestion.

A sub-batch in which more than half of the documents failed is counted as
failed as a whole; processing continues with the next sub-batch.  The
message succeeds only when no document failed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from queue_processor.models.coordination import LockType
from queue_processor.models.messages import (
    BatchReprocessPayload,
    Document,
    MessageType,
    QueueMessage,
    ReprocessOptions,
    ReprocessReason,
)
from queue_processor.models.results import ErrorCode, ProcessingError, ProcessingResult
from queue_processor.processors.base import (
    BaseProcessor,
    chunk_index_from_key,
    chunk_prefix,
    epoch_ms,
)
from queue_processor.utils.concurrency import gather_in_groups, partition
from queue_processor.utils.errors import (
    DEFAULT_TRANSIENT_PATTERNS,
    BatchPartialFailureError,
    ProcessingFailedError,
    is_retryable,
)

DEFAULT_SCHEMA_VERSION = "2.0"
DEFAULT_POLICY_VERSION = "1.0"


@dataclass
class DocumentOutcome:
    document_id: str
    success: bool
    error: str | None = None


class BatchReprocessProcessor(BaseProcessor):
    handles = (MessageType.BATCH_REPROCESS,)

    async def process(self, message: QueueMessage) -> ProcessingResult:
        payload = message.payload
        if not isinstance(payload, BatchReprocessPayload):
            return self._unexpected_payload(message)
        message_id = message.message_id
        start = time.perf_counter()

        self._ctx.log_event(
            "batch_processing_started",
            messageId=message_id,
            documentCount=len(payload.document_ids),
            reason=payload.reason.value,
        )

        try:
            outcomes = await self._reprocess_all(payload)
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            self._ctx.log_event("batch_processing_failed", messageId=message_id, error=error_message)
            return ProcessingResult.failure(
                message_id,
                ErrorCode.BATCH_PROCESSING_FAILED,
                error_message,
                retryable=is_retryable(exc, DEFAULT_TRANSIENT_PATTERNS),
                processing_time=self._elapsed_ms(start),
            )

        failed = [outcome for outcome in outcomes if not outcome.success]
        processing_time = self._elapsed_ms(start)
        summary = {
            "reason": payload.reason.value,
            "successCount": len(outcomes) - len(failed),
            "failureCount": len(failed),
            "batchResults": [
                {"documentId": o.document_id, "success": o.success, **({"error": o.error} if o.error else {})}
                for o in outcomes
            ],
        }

        self._ctx.log_event(
            "batch_processing_completed",
            messageId=message_id,
            successCount=summary["successCount"],
            failureCount=summary["failureCount"],
            processingTime=processing_time,
        )
        self._ctx.log_metric(
            "reprocess_processing_time",
            processing_time,
            reason=payload.reason.value,
            document_count=str(len(payload.document_ids)),
        )

        if failed:
            return ProcessingResult(
                success=False,
                message_id=message_id,
                processing_time=processing_time,
                error=ProcessingError(
                    code=ErrorCode.BATCH_PROCESSING_FAILED,
                    message=f"{len(failed)} of {len(outcomes)} documents failed",
                    retryable=False,
                ),
                metadata=summary,
            )
        return ProcessingResult(
            success=True,
            message_id=message_id,
            processing_time=processing_time,
            metadata=summary,
        )

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _reprocess_all(self, payload: BatchReprocessPayload) -> list[DocumentOutcome]:
        size = self._ctx.settings.reprocess_sub_batch_size
        total_chunks = -(-len(payload.document_ids) // size)

        def _on_group_start(index: int, group: list[str]) -> None:
            self._ctx.log_event(
                "processing_batch_chunk",
                chunkIndex=index + 1,
                totalChunks=total_chunks,
                chunkSize=len(group),
            )

        async def _one(document_id: str) -> DocumentOutcome:
            try:
                await self._reprocess_document(document_id, payload.reason, payload.options)
            except Exception as exc:
                self._ctx.log_event(
                    "document_reprocess_failed",
                    documentId=document_id,
                    reason=payload.reason.value,
                    error=str(exc),
                )
                return DocumentOutcome(document_id, success=False, error=str(exc) or type(exc).__name__)
            return DocumentOutcome(document_id, success=True)

        results = await gather_in_groups(
            payload.document_ids,
            _one,
            size,
            delay_between_groups=self._ctx.settings.reprocess_sub_batch_delay,
            on_group_start=_on_group_start,
        )
        # _one never raises, so every entry is a DocumentOutcome.
        outcomes = [r for r in results if isinstance(r, DocumentOutcome)]

        settled: list[DocumentOutcome] = []
        for index, group in enumerate(partition(outcomes, size)):
            failed_ids = [o.document_id for o in group if not o.success]
            if len(failed_ids) * 2 <= len(group):
                settled.extend(group)
                continue

            error = BatchPartialFailureError(
                f"Sub-batch {index + 1} failed: {len(failed_ids)} of {len(group)} documents failed",
                failed_ids=failed_ids,
            )
            self._ctx.log_event(
                "sub_batch_failed",
                chunkIndex=index + 1,
                failedIds=error.failed_ids,
                error=error.message,
            )
            settled.extend(
                o if not o.success else DocumentOutcome(o.document_id, success=False, error=error.message)
                for o in group
            )
        return settled

    async def _reprocess_document(
        self,
        document_id: str,
        reason: ReprocessReason,
        options: ReprocessOptions,
    ) -> None:
        if reason is ReprocessReason.SCHEMA_CHANGE:
            await self._apply_schema_change(document_id, options)
        elif reason is ReprocessReason.MODEL_UPDATE:
            await self._reembed(document_id)
        elif reason is ReprocessReason.POLICY_CHANGE:
            await self._apply_policy_change(document_id, options)
        else:
            await self._reindex(document_id, options)

    # ------------------------------------------------------------------
    # Per-reason handlers
    # ------------------------------------------------------------------

    async def _require_document(self, document_id: str) -> Document:
        document = await self._load_document(document_id)
        if document is None:
            raise ProcessingFailedError(f"Document not found: {document_id}")
        return document

    async def _apply_schema_change(self, document_id: str, options: ReprocessOptions) -> None:
        document = await self._require_document(document_id)
        transformed = document.model_copy(
            update={
                "metadata": {
                    **document.metadata,
                    "schemaVersion": options.new_schema_version or DEFAULT_SCHEMA_VERSION,
                    "transformedAt": epoch_ms(),
                }
            }
        )
        await self._queue_for_ingestion(transformed, force_reprocess=True)

    async def _reembed(self, document_id: str) -> None:
        keys = [
            key
            for key in await self._ctx.blob_store.list_keys(chunk_prefix(document_id))
            if chunk_index_from_key(document_id, key) is not None
        ]
        if not keys:
            raise ProcessingFailedError(f"No chunks found for document: {document_id}")

        lock = await self._acquire(document_id, LockType.UPDATING)
        try:
            for key in keys:
                blob = await self._ctx.blob_store.get(key)
                if blob is None:
                    continue
                vector_id = key[len("chunks/") : -len(".txt")]
                vector = await self._ctx.embedder.embed_single(blob.content)
                existing = await self._ctx.vector_index.get(vector_id)
                await self._ctx.vector_index.upsert(
                    vector_id,
                    vector,
                    None if existing is not None else blob.metadata,
                )
        finally:
            await self._release(lock)

        self._ctx.log_event("document_reembedded", documentId=document_id, chunks=len(keys))

    async def _apply_policy_change(self, document_id: str, options: ReprocessOptions) -> None:
        document = await self._load_document(document_id)
        if document is None:
            raise ProcessingFailedError(f"Document metadata not found: {document_id}")

        acl = options.new_acl if options.new_acl is not None else document.acl
        policy = {
            "acl": acl,
            "policyVersion": options.policy_version or DEFAULT_POLICY_VERSION,
            "updatedAt": epoch_ms(),
        }
        if options.policy_type:
            policy["policyType"] = options.policy_type

        lock = await self._acquire(document_id, LockType.UPDATING)
        try:
            await self._save_document(document.model_copy(update={"metadata": {**document.metadata, **policy}}))
            for key in await self._ctx.blob_store.list_keys(chunk_prefix(document_id)):
                if chunk_index_from_key(document_id, key) is None:
                    continue
                blob = await self._ctx.blob_store.get(key)
                if blob is not None:
                    await self._ctx.blob_store.put(key, blob.content, {**blob.metadata, **policy}, blob.content_type)
            for vector_id in await self._ctx.vector_index.ids_for_document(document_id):
                await self._ctx.vector_index.update_metadata(vector_id, policy)
        finally:
            await self._release(lock)

        self._ctx.log_event(
            "document_policy_updated",
            documentId=document_id,
            policyVersion=policy["policyVersion"],
        )

    async def _reindex(self, document_id: str, options: ReprocessOptions) -> None:
        document = await self._require_document(document_id)
        await self._queue_for_ingestion(
            document,
            force_reprocess=True,
            preserveVersions=options.preserve_versions,
        )
