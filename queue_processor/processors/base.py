"""Shared plumbing for the type-specific processors.

Every processor turns one :class:`QueueMessage` into one
:class:`ProcessingResult` and never lets an exception from its own
pipeline escape; the dispatcher only sees exceptions from bugs outside
that boundary.
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, ClassVar

import structlog

from queue_processor.context import QueueProcessorContext
from queue_processor.dispatch.queues import DOCUMENT_INGESTION_QUEUE
from queue_processor.models.coordination import DocumentLock, LockType
from queue_processor.models.messages import Document, MessageType, QueueMessage
from queue_processor.models.results import ErrorCode, ProcessingResult
from queue_processor.utils.errors import LockNotFoundError, LockReleaseForbiddenError
from queue_processor.utils.logging import get_logger

# ---------------------------------------------------------------------------
# Blob / vector key layout
# ---------------------------------------------------------------------------


def chunk_id(document_id: str, index: int) -> str:
    return f"{document_id}#{index}"


def chunk_key(document_id: str, index: int) -> str:
    return f"chunks/{chunk_id(document_id, index)}.txt"


def chunk_prefix(document_id: str) -> str:
    return f"chunks/{document_id}#"


def document_key(document_id: str) -> str:
    return f"documents/{document_id}.json"


def chunk_index_from_key(document_id: str, key: str) -> int | None:
    """Return the chunk index encoded in *key*, or ``None`` if it belongs to another document."""
    match = re.fullmatch(rf"chunks/{re.escape(document_id)}#(\d+)\.txt", key)
    return int(match.group(1)) if match else None


def epoch_ms() -> int:
    return int(time.time() * 1000)


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class BaseProcessor(ABC):
    """Base class holding the context and the helpers all processors share."""

    handles: ClassVar[tuple[MessageType, ...]] = ()

    def __init__(self, ctx: QueueProcessorContext) -> None:
        self._ctx = ctx
        self._logger: structlog.BoundLogger = get_logger(type(self).__module__)

    @abstractmethod
    async def process(self, message: QueueMessage) -> ProcessingResult:
        """Process one message and report the outcome."""

    def _unexpected_payload(self, message: QueueMessage) -> ProcessingResult:
        """Non-retryable result for a payload this processor does not handle."""
        self._logger.error(
            "unexpected_payload",
            messageId=message.message_id,
            messageType=message.type.value,
            processor=type(self).__name__,
        )
        return ProcessingResult.failure(
            message.message_id,
            ErrorCode.INVALID_PAYLOAD,
            f"{type(self).__name__} cannot process {message.type.value} messages",
            retryable=False,
        )

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * 1000, 2)

    async def _acquire(self, document_id: str, lock_type: LockType) -> DocumentLock:
        grant = await self._ctx.get_coordinator(document_id).acquire_lock(
            document_id,
            worker_id=self._ctx.worker_id,
            lock_type=lock_type,
            ttl_seconds=self._ctx.settings.lock_ttl(lock_type),
        )
        return grant.lock

    async def _release(self, lock: DocumentLock) -> None:
        """Release *lock*; a lock that already expired and was reclaimed is only logged."""
        try:
            await self._ctx.get_coordinator(lock.document_id).release_lock(
                lock.document_id, lock.lock_id, self._ctx.worker_id
            )
        except (LockNotFoundError, LockReleaseForbiddenError) as exc:
            self._logger.warning(
                "lock_release_skipped",
                documentId=lock.document_id,
                lockId=lock.lock_id,
                reason=exc.message,
            )

    async def _load_document(self, document_id: str) -> Document | None:
        blob = await self._ctx.blob_store.get(document_key(document_id))
        if blob is None:
            return None
        return Document.model_validate_json(blob.content)

    async def _save_document(self, document: Document, **extra_metadata: Any) -> None:
        await self._ctx.blob_store.put(
            document_key(document.id),
            document.model_dump_json(by_alias=True, exclude_none=True),
            metadata={"doc_id": document.id, "source": document.source, **extra_metadata},
            content_type="application/json",
        )

    async def _queue_for_ingestion(
        self,
        document: Document,
        *,
        force_reprocess: bool = False,
        **options: Any,
    ) -> str:
        body = {
            "type": MessageType.DOCUMENT_INGESTION.value,
            "document": document.to_wire(),
            "options": {"forceReprocess": force_reprocess, **options},
        }
        message_id = await self._ctx.producer.send(DOCUMENT_INGESTION_QUEUE, body)
        self._ctx.log_event(
            "document_queued_for_processing",
            documentId=document.id,
            source=document.source,
            url=document.url,
            queuedMessageId=message_id,
        )
        return message_id

    async def _queue_for_deletion(self, document_id: str, source: str, reason: str | None = None) -> str:
        body: dict[str, Any] = {
            "type": MessageType.DOCUMENT_DELETE.value,
            "documentId": document_id,
            "hardDelete": True,
        }
        if reason:
            body["reason"] = reason
        message_id = await self._ctx.producer.send(DOCUMENT_INGESTION_QUEUE, body)
        self._ctx.log_event(
            "document_queued_for_deletion",
            documentId=document_id,
            source=source,
            queuedMessageId=message_id,
        )
        return message_id
