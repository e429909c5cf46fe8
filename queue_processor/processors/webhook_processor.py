"""Webhook sync processor.

Turns a change notification from a content source into follow-up queue
work:

======================  ================================================
Event                   Effect
======================  ================================================
created / updated       fetch the resource, enqueue ``document_ingestion``
deleted                 enqueue a hard ``document_delete``
moved                   delete the old id (if the id changed), then fetch
                        and enqueue the resource at its new URL
======================  ================================================

A fetcher returning ``None`` (resource gone or not fetchable) is logged
and treated as a no-op success.  Timeouts, rate limits (``429``) and
upstream ``5xx`` responses are retryable.
"""

from __future__ import annotations

import time

from queue_processor.models.messages import (
    EventType,
    MessageType,
    QueueMessage,
    SourceMetadata,
    SourceType,
    WebhookSyncPayload,
)
from queue_processor.models.results import ErrorCode, ProcessingResult
from queue_processor.processors.base import BaseProcessor
from queue_processor.utils.errors import (
    WEBHOOK_TRANSIENT_PATTERNS,
    ConfigurationError,
    is_retryable,
)


class WebhookProcessor(BaseProcessor):
    handles = (MessageType.WEBHOOK_SYNC,)

    async def process(self, message: QueueMessage) -> ProcessingResult:
        payload = message.payload
        if not isinstance(payload, WebhookSyncPayload):
            return self._unexpected_payload(message)
        message_id = message.message_id
        start = time.perf_counter()

        self._ctx.log_event(
            "webhook_processing_started",
            messageId=message_id,
            sourceType=payload.source_type.value,
            eventType=payload.event_type.value,
            resourceId=payload.resource_id,
        )

        try:
            queued = await self._handle(payload)
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            processing_time = self._elapsed_ms(start)
            self._ctx.log_event(
                "webhook_processing_failed",
                messageId=message_id,
                sourceType=payload.source_type.value,
                resourceId=payload.resource_id,
                error=error_message,
                processingTime=processing_time,
            )
            return ProcessingResult.failure(
                message_id,
                ErrorCode.WEBHOOK_PROCESSING_FAILED,
                error_message,
                retryable=is_retryable(exc, WEBHOOK_TRANSIENT_PATTERNS),
                processing_time=processing_time,
            )

        processing_time = self._elapsed_ms(start)
        self._ctx.log_event(
            f"{payload.source_type.value}_webhook_processed",
            messageId=message_id,
            eventType=payload.event_type.value,
            resourceId=payload.resource_id,
            queuedMessages=len(queued),
            processingTime=processing_time,
        )
        return ProcessingResult(
            success=True,
            message_id=message_id,
            processing_time=processing_time,
            metadata={
                "sourceType": payload.source_type.value,
                "eventType": payload.event_type.value,
                "resourceId": payload.resource_id,
                "queuedMessageIds": queued,
            },
        )

    async def _handle(self, payload: WebhookSyncPayload) -> list[str]:
        metadata = payload.source_metadata()

        if payload.event_type in (EventType.CREATED, EventType.UPDATED):
            return await self._sync(payload.source_type, payload.resource_id, payload.resource_url, metadata)

        if payload.event_type is EventType.DELETED:
            return [
                await self._queue_for_deletion(
                    metadata.resolve_document_id(payload.resource_id),
                    payload.source_type.value,
                    reason=f"{payload.source_type.value} resource deleted",
                )
            ]

        return await self._move(payload, metadata)

    async def _sync(
        self,
        source_type: SourceType,
        resource_id: str,
        url: str,
        metadata: SourceMetadata,
    ) -> list[str]:
        fetcher = self._ctx.get_fetcher(source_type)
        if fetcher is None:
            raise ConfigurationError(f"No content fetcher configured for {source_type.value}")

        document = await fetcher.fetch(resource_id, url, metadata)
        if document is None:
            self._ctx.log_event(
                "webhook_resource_unavailable",
                sourceType=source_type.value,
                resourceId=resource_id,
                url=url,
            )
            return []
        return [await self._queue_for_ingestion(document)]

    async def _move(self, payload: WebhookSyncPayload, metadata: SourceMetadata) -> list[str]:
        source_type = metadata.source_type or payload.source_type
        fetcher = self._ctx.get_fetcher(source_type)
        if fetcher is None:
            raise ConfigurationError(f"No content fetcher configured for {source_type.value}")

        document = await fetcher.fetch(payload.resource_id, payload.resource_url, metadata)
        previous_id = metadata.resolve_document_id(payload.resource_id)
        queued: list[str] = []

        # Deleting an id that is about to be re-ingested would race the ingestion
        # on the same queue, so only retire the old id when it changes.
        if document is None or document.id != previous_id:
            queued.append(
                await self._queue_for_deletion(
                    previous_id,
                    payload.source_type.value,
                    reason="resource moved",
                )
            )
        if document is not None:
            queued.append(await self._queue_for_ingestion(document, force_reprocess=True))
        return queued
