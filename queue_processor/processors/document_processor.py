"""Document ingestion processor.

Pipeline for one ``document_ingestion`` message::

    acquire "processing" lock ──(held by another worker)──→ LOCK_ACQUISITION_FAILED, retryable
      │
    SHA-256 content hash → dedup ──(duplicate, no forceReprocess)──→ success, skipped
      │
    state processing/preprocessing  0/4   0%   → clean text
    state processing/chunking       1/4  25%   → split into word windows
    state processing/embedding      2/4  50%   → per chunk: DLP, embed, store blob, upsert vector
                                         ..90%    (linear in chunk count)
    state completed                 4/4 100%
      │
    release lock (always, also on failure)

Any exception sets the state to ``failed`` with the error text and is
returned as ``PROCESSING_FAILED``; it is retryable only when it is a
transient collaborator failure.
"""

from __future__ import annotations

import math
import time
from datetime import datetime

from queue_processor.models.coordination import (
    LockType,
    ProcessingProgress,
    ProcessingStatus,
    StateUpdate,
)
from queue_processor.models.messages import (
    Document,
    DocumentIngestionOptions,
    DocumentIngestionPayload,
    MessageType,
    QueueMessage,
)
from queue_processor.models.results import ErrorCode, ProcessingResult
from queue_processor.processors.base import (
    BaseProcessor,
    chunk_id,
    chunk_index_from_key,
    chunk_key,
    chunk_prefix,
    epoch_ms,
    utcnow,
)
from queue_processor.utils.errors import (
    DEFAULT_TRANSIENT_PATTERNS,
    LockConflictError,
    is_retryable,
)
from queue_processor.utils.text import TextChunker, clean_text, content_hash

TOTAL_STEPS = 4


def embedding_percentage(chunks_done: int, total_chunks: int) -> int:
    """Progress through the embedding step, mapped linearly onto 50..90 and rounded half up."""
    return math.floor(50 + chunks_done / total_chunks * 40 + 0.5)


class DocumentProcessor(BaseProcessor):
    handles = (MessageType.DOCUMENT_INGESTION,)

    async def process(self, message: QueueMessage) -> ProcessingResult:
        payload = message.payload
        if not isinstance(payload, DocumentIngestionPayload):
            return self._unexpected_payload(message)
        document, options = payload.document, payload.options
        message_id = message.message_id
        start = time.perf_counter()
        started_at = utcnow()

        self._ctx.log_event(
            "document_processing_started",
            documentId=document.id,
            messageId=message_id,
            source=document.source,
        )

        try:
            lock = await self._acquire(document.id, LockType.PROCESSING)
        except LockConflictError as exc:
            return ProcessingResult.failure(
                message_id,
                ErrorCode.LOCK_ACQUISITION_FAILED,
                exc.message,
                retryable=True,
                processing_time=self._elapsed_ms(start),
            )

        try:
            try:
                return await self._ingest(document, options, message_id, start, started_at)
            finally:
                await self._release(lock)
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            await self._record_failure(document.id, started_at, error_message)
            processing_time = self._elapsed_ms(start)
            self._ctx.log_event(
                "document_processing_failed",
                documentId=document.id,
                messageId=message_id,
                error=error_message,
                processingTime=processing_time,
            )
            return ProcessingResult.failure(
                message_id,
                ErrorCode.PROCESSING_FAILED,
                error_message,
                retryable=is_retryable(exc, DEFAULT_TRANSIENT_PATTERNS),
                processing_time=processing_time,
            )

    async def _ingest(
        self,
        document: Document,
        options: DocumentIngestionOptions,
        message_id: str,
        start: float,
        started_at: datetime,
    ) -> ProcessingResult:
        coordinator = self._ctx.get_coordinator(document.id)

        digest = content_hash(document.text)
        dedup = await coordinator.deduplicate(document.id, digest)
        if dedup.is_duplicate and not options.force_reprocess:
            self._ctx.log_event(
                "document_skipped_duplicate",
                documentId=document.id,
                existingDocumentId=dedup.existing_document_id,
                messageId=message_id,
            )
            return ProcessingResult(
                success=True,
                message_id=message_id,
                processing_time=self._elapsed_ms(start),
                metadata={
                    "action": "skipped_duplicate",
                    "existingDocumentId": dedup.existing_document_id,
                },
            )

        await self._set_progress(document.id, started_at, "preprocessing", 0, 0)
        cleaned = clean_text(document.text)

        await self._set_progress(document.id, started_at, "chunking", 1, 25)
        chunks = self._chunker_for(options).chunk(cleaned)

        await self._set_progress(document.id, started_at, "embedding", 2, 50)
        await self._save_document(document, contentHash=digest)

        embeddings_generated = 0
        for index, chunk in enumerate(chunks):
            processed = await self._dlp_scan(chunk) if options.dlp_enabled else chunk
            vector = await self._ctx.embedder.embed_single(processed)

            metadata = {
                "source": document.source,
                "chunk_index": index,
                "doc_id": document.id,
                "timestamp": epoch_ms(),
                "acl": document.acl,
            }
            if document.url:
                metadata["url"] = document.url

            await self._ctx.blob_store.put(chunk_key(document.id, index), processed, metadata)
            await self._ctx.vector_index.upsert(chunk_id(document.id, index), vector, metadata)
            embeddings_generated += 1

            await self._set_progress(
                document.id,
                started_at,
                "embedding",
                2,
                embedding_percentage(index + 1, len(chunks)),
            )

        await self._prune_stale_chunks(document.id, len(chunks))

        await coordinator.update_state(
            StateUpdate(
                document_id=document.id,
                status=ProcessingStatus.COMPLETED,
                progress=ProcessingProgress(
                    current_step="completed",
                    steps_completed=TOTAL_STEPS,
                    total_steps=TOTAL_STEPS,
                    percentage=100,
                ),
                started_at=started_at,
                completed_at=utcnow(),
            )
        )

        processing_time = self._elapsed_ms(start)
        self._ctx.log_event(
            "document_processing_completed",
            documentId=document.id,
            messageId=message_id,
            chunksProcessed=len(chunks),
            embeddingsGenerated=embeddings_generated,
            processingTime=processing_time,
        )
        self._ctx.log_metric(
            "document_processing_time",
            processing_time,
            source=document.source,
            chunks=str(len(chunks)),
        )
        return ProcessingResult(
            success=True,
            message_id=message_id,
            processing_time=processing_time,
            chunks_processed=len(chunks),
            embeddings_generated=embeddings_generated,
        )

    def _chunker_for(self, options: DocumentIngestionOptions) -> TextChunker:
        chunk_size = options.chunk_size or self._ctx.settings.default_chunk_size
        if options.overlap is not None:
            overlap = options.overlap
        else:
            # Keep the default 1:5 overlap ratio for callers that only set a chunk size.
            overlap = min(self._ctx.settings.default_chunk_overlap, chunk_size // 5)
        return TextChunker(chunk_size=chunk_size, overlap=overlap)

    async def _dlp_scan(self, chunk: str) -> str:
        # TODO: plug in a redaction service once one is chosen; pass-through until then.
        return chunk

    async def _prune_stale_chunks(self, document_id: str, chunk_count: int) -> None:
        """Drop chunks left over from a previous version that had more chunks."""
        stale_keys = [
            key
            for key in await self._ctx.blob_store.list_keys(chunk_prefix(document_id))
            if (index := chunk_index_from_key(document_id, key)) is not None and index >= chunk_count
        ]
        stale_ids = [
            vector_id
            for vector_id in await self._ctx.vector_index.ids_for_document(document_id)
            if vector_id.rsplit("#", 1)[-1].isdigit() and int(vector_id.rsplit("#", 1)[-1]) >= chunk_count
        ]
        for key in stale_keys:
            await self._ctx.blob_store.delete(key)
        if stale_ids:
            await self._ctx.vector_index.delete(stale_ids)
        if stale_keys or stale_ids:
            self._ctx.log_event(
                "stale_chunks_pruned",
                documentId=document_id,
                blobs=len(stale_keys),
                vectors=len(stale_ids),
            )

    async def _set_progress(
        self,
        document_id: str,
        started_at: datetime,
        step: str,
        steps_completed: int,
        percentage: int,
    ) -> None:
        await self._ctx.get_coordinator(document_id).update_state(
            StateUpdate(
                document_id=document_id,
                status=ProcessingStatus.PROCESSING,
                progress=ProcessingProgress(
                    current_step=step,
                    steps_completed=steps_completed,
                    total_steps=TOTAL_STEPS,
                    percentage=percentage,
                ),
                started_at=started_at,
            )
        )

    async def _record_failure(self, document_id: str, started_at: datetime, error_message: str) -> None:
        try:
            await self._ctx.get_coordinator(document_id).update_state(
                StateUpdate(
                    document_id=document_id,
                    status=ProcessingStatus.FAILED,
                    progress=ProcessingProgress(
                        current_step="failed",
                        steps_completed=0,
                        total_steps=TOTAL_STEPS,
                        percentage=0,
                    ),
                    started_at=started_at,
                    error=error_message,
                )
            )
        except Exception as exc:
            self._logger.error(
                "failure_state_not_recorded",
                documentId=document_id,
                error=str(exc),
                original_error=error_message,
            )
