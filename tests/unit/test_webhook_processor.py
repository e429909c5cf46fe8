"""Unit tests for WebhookProcessor: event routing to ingestion and deletion work."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from queue_processor.dispatch.queues import DOCUMENT_INGESTION_QUEUE
from queue_processor.models.messages import Document, SourceType
from queue_processor.models.results import ErrorCode
from queue_processor.processors.webhook_processor import WebhookProcessor

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _webhook(source: str, event: str, resource_id: str = "res-1", **metadata) -> dict:
    return {
        "type": "webhook_sync",
        "sourceType": source,
        "eventType": event,
        "resourceId": resource_id,
        "resourceUrl": f"https://{source}.example.com/{resource_id}",
        "metadata": metadata,
    }


async def _queued_bodies(broker) -> list[dict]:
    batch = await broker.receive_batch(DOCUMENT_INGESTION_QUEUE, 100)
    batch.ack_all()
    return [m.body for m in batch.messages]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestCreatedAndUpdated:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", ["created", "updated"])
    async def test_queues_fetched_document_for_ingestion(self, ctx, broker, make_message, event: str) -> None:
        body = _webhook("confluence", event, pageId="page-42", permissions=["eng"], title="Runbook")

        result = await WebhookProcessor(ctx).process(make_message(body))

        assert result.success is True
        assert len(result.metadata["queuedMessageIds"]) == 1
        [queued] = await _queued_bodies(broker)
        assert queued["type"] == "document_ingestion"
        assert queued["document"]["id"] == "page-42"
        assert queued["document"]["source"] == "confluence"
        assert queued["document"]["metadata"]["acl"] == ["eng"]
        assert queued["options"]["forceReprocess"] is False

    @pytest.mark.asyncio
    async def test_unavailable_resource_is_a_no_op(self, ctx, broker, make_message) -> None:
        fetcher = AsyncMock()
        fetcher.fetch = AsyncMock(return_value=None)
        ctx.fetchers[SourceType.WEBSITE] = fetcher

        result = await WebhookProcessor(ctx).process(make_message(_webhook("website", "updated")))

        assert result.success is True
        assert result.metadata["queuedMessageIds"] == []
        assert broker.pending(DOCUMENT_INGESTION_QUEUE) == 0

    @pytest.mark.asyncio
    async def test_missing_fetcher_is_permanent_failure(self, ctx, make_message) -> None:
        result = await WebhookProcessor(ctx).process(make_message(_webhook("website", "created")))

        assert result.success is False
        assert result.error.code is ErrorCode.WEBHOOK_PROCESSING_FAILED
        assert result.retryable is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message, retryable",
        [("HTTP 429 Too Many Requests", True), ("upstream 503", True), ("request timeout", True), ("HTTP 404", False)],
    )
    async def test_fetch_errors_are_classified(self, ctx, make_message, message: str, retryable: bool) -> None:
        fetcher = AsyncMock()
        fetcher.fetch = AsyncMock(side_effect=RuntimeError(message))
        ctx.fetchers[SourceType.WEBSITE] = fetcher

        result = await WebhookProcessor(ctx).process(make_message(_webhook("website", "created")))

        assert result.error.code is ErrorCode.WEBHOOK_PROCESSING_FAILED
        assert result.retryable is retryable


class TestDeleted:
    @pytest.mark.asyncio
    async def test_queues_hard_delete(self, ctx, broker, make_message) -> None:
        result = await WebhookProcessor(ctx).process(make_message(_webhook("sharepoint", "deleted", "sp-9")))

        assert result.success is True
        [queued] = await _queued_bodies(broker)
        assert queued["type"] == "document_delete"
        assert queued["documentId"] == "sp-9"
        assert queued["hardDelete"] is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "source, key, value",
        [("confluence", "pageId", "page-42"), ("sharepoint", "documentId", "sp-doc-3"), ("jira", "issueKey", "PROJ-8")],
    )
    async def test_deletes_the_id_the_created_event_ingested(
        self, ctx, broker, make_message, source: str, key: str, value: str
    ) -> None:
        processor = WebhookProcessor(ctx)

        await processor.process(make_message(_webhook(source, "created", "res-1", **{key: value})))
        await processor.process(make_message(_webhook(source, "deleted", "res-1", **{key: value}), "msg-2"))

        ingest, delete = await _queued_bodies(broker)
        assert ingest["document"]["id"] == value
        assert delete["type"] == "document_delete"
        assert delete["documentId"] == ingest["document"]["id"]


class TestMoved:
    @pytest.mark.asyncio
    async def test_changed_id_deletes_old_and_ingests_new(self, ctx, broker, make_message) -> None:
        fetcher = AsyncMock()
        fetcher.fetch = AsyncMock(
            return_value=Document(id="NEW-7", text="moved issue", source="jira", url="https://jira.example.com/NEW-7")
        )
        ctx.fetchers[SourceType.JIRA] = fetcher
        body = _webhook("jira", "moved", "res-1", issueKey="OLD-1")

        result = await WebhookProcessor(ctx).process(make_message(body))

        assert len(result.metadata["queuedMessageIds"]) == 2
        delete, ingest = await _queued_bodies(broker)
        assert delete["type"] == "document_delete"
        assert delete["documentId"] == "OLD-1"
        assert ingest["document"]["id"] == "NEW-7"
        assert ingest["options"]["forceReprocess"] is True

    @pytest.mark.asyncio
    async def test_same_id_only_reingests(self, ctx, broker, make_message) -> None:
        body = _webhook("jira", "moved", "res-1", issueKey="PROJ-3")

        result = await WebhookProcessor(ctx).process(make_message(body))

        assert result.success is True
        [ingest] = await _queued_bodies(broker)
        assert ingest["type"] == "document_ingestion"
        assert ingest["document"]["id"] == "PROJ-3"
        assert ingest["options"]["forceReprocess"] is True


class TestUnexpectedPayload:
    @pytest.mark.asyncio
    async def test_other_message_type_is_a_permanent_invalid_payload(
        self, ctx, make_message, make_ingestion_body
    ) -> None:
        result = await WebhookProcessor(ctx).process(make_message(make_ingestion_body("doc-1", "hello world")))

        assert result.success is False
        assert result.error.code is ErrorCode.INVALID_PAYLOAD
        assert result.retryable is False
