"""End-to-end flows: broker → worker → dispatcher → processors → coordinator."""

from __future__ import annotations

import pytest

from queue_processor.dispatch.queues import (
    BATCH_REPROCESSING_QUEUE,
    DOCUMENT_INGESTION_QUEUE,
    WEBHOOK_PROCESSING_QUEUE,
)
from queue_processor.dispatch.transport import DeliveredMessage, Disposition, MessageBatch
from queue_processor.models.coordination import LockType, ProcessingStatus
from queue_processor.runtime.worker import QueueWorker
from queue_processor.utils.errors import LockConflictError


class TestIngestionPipeline:
    @pytest.mark.asyncio
    async def test_hello_world_is_ingested_once(
        self, dispatcher, coordinator, embedder, blob_store, vector_index, make_ingestion_body
    ) -> None:
        batch = MessageBatch(
            DOCUMENT_INGESTION_QUEUE,
            [DeliveredMessage("m1", make_ingestion_body("doc-1", "hello world", chunkSize=100))],
        )

        result = await dispatcher.dispatch(batch)

        assert result.success_count == 1
        assert batch.messages[0].disposition is Disposition.ACK
        assert len(embedder.calls) == 1
        assert len(blob_store.chunk_puts) == 1
        assert len(vector_index.upserted) == 1
        state = await coordinator.get_state("doc-1")
        assert state.status is ProcessingStatus.COMPLETED
        assert state.progress.percentage == 100

    @pytest.mark.asyncio
    async def test_duplicate_content_under_new_id_is_skipped(
        self, dispatcher, embedder, make_ingestion_body
    ) -> None:
        first = MessageBatch(DOCUMENT_INGESTION_QUEUE, [DeliveredMessage("m1", make_ingestion_body("d1", "abc"))])
        second = MessageBatch(DOCUMENT_INGESTION_QUEUE, [DeliveredMessage("m2", make_ingestion_body("d2", "abc"))])

        await dispatcher.dispatch(first)
        calls_after_first = len(embedder.calls)
        result = await dispatcher.dispatch(second)

        assert result.results[0].metadata["action"] == "skipped_duplicate"
        assert result.results[0].metadata["existingDocumentId"] == "d1"
        assert len(embedder.calls) == calls_after_first
        assert second.messages[0].disposition is Disposition.ACK

    @pytest.mark.asyncio
    async def test_locked_document_is_redelivered(
        self, dispatcher, coordinator, make_ingestion_body
    ) -> None:
        await coordinator.acquire_lock("doc-1", "other-worker", LockType.PROCESSING, ttl_seconds=60)
        batch = MessageBatch(DOCUMENT_INGESTION_QUEUE, [DeliveredMessage("m1", make_ingestion_body("doc-1", "x"))])

        result = await dispatcher.dispatch(batch)

        assert result.failure_count == 1
        assert batch.messages[0].disposition is Disposition.RETRY


class TestLockExpiry:
    @pytest.mark.asyncio
    async def test_abandoned_lock_is_reclaimed_after_ttl(self, coordinator, clock) -> None:
        await coordinator.acquire_lock("doc-1", "w1", ttl_seconds=1)

        with pytest.raises(LockConflictError):
            await coordinator.acquire_lock("doc-1", "w2")

        clock.advance(2)
        grant = await coordinator.acquire_lock("doc-1", "w2")

        assert grant.lock.worker_id == "w2"
        assert grant.action.value == "acquired"


class TestWorkerFlows:
    @pytest.mark.asyncio
    async def test_webhook_fans_out_to_ingestion(self, broker, dispatcher, coordinator, vector_index) -> None:
        await broker.send(
            WEBHOOK_PROCESSING_QUEUE,
            {
                "type": "webhook_sync",
                "sourceType": "jira",
                "eventType": "created",
                "resourceId": "PROJ-1",
                "resourceUrl": "https://jira.example.com/browse/PROJ-1",
                "metadata": {"issueKey": "PROJ-1", "permissions": ["dev"]},
            },
        )

        results = await QueueWorker(broker, dispatcher).drain()

        assert {r.queue for r in results} == {WEBHOOK_PROCESSING_QUEUE, DOCUMENT_INGESTION_QUEUE}
        assert (await coordinator.get_state("PROJ-1")).status is ProcessingStatus.COMPLETED
        assert (await vector_index.get("PROJ-1#0")).metadata["acl"] == ["dev"]

    @pytest.mark.asyncio
    async def test_reindex_then_delete(self, broker, dispatcher, coordinator, vector_index, make_ingestion_body) -> None:
        worker = QueueWorker(broker, dispatcher)
        await broker.send(DOCUMENT_INGESTION_QUEUE, make_ingestion_body("doc-1", "alpha beta gamma"))
        await worker.drain()

        await broker.send(
            BATCH_REPROCESSING_QUEUE,
            {"type": "batch_reprocess", "documentIds": ["doc-1"], "reason": "manual_reindex"},
        )
        await worker.drain()
        assert (await coordinator.get_state("doc-1")).status is ProcessingStatus.COMPLETED

        await broker.send(DOCUMENT_INGESTION_QUEUE, {"type": "document_delete", "documentId": "doc-1", "hardDelete": True})
        await worker.drain()

        assert (await coordinator.get_state("doc-1")).status is ProcessingStatus.CANCELLED
        assert await vector_index.ids_for_document("doc-1") == []

    @pytest.mark.asyncio
    async def test_persistently_failing_message_is_dead_lettered(self, broker, dispatcher, coordinator, make_ingestion_body) -> None:
        await coordinator.acquire_lock("doc-1", "stuck-worker", LockType.PROCESSING, ttl_seconds=3600)
        await broker.send(DOCUMENT_INGESTION_QUEUE, make_ingestion_body("doc-1", "never"))

        await QueueWorker(broker, dispatcher).drain()

        dead = broker.dead_letters(DOCUMENT_INGESTION_QUEUE)
        assert len(dead) == 1
        assert dead[0].failure_count == 4
        assert broker.pending(DOCUMENT_INGESTION_QUEUE) == 0
