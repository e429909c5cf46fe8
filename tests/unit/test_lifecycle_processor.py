"""Unit tests for DocumentLifecycleProcessor: metadata updates, requeues and deletes."""

from __future__ import annotations

import pytest
import pytest_asyncio

from queue_processor.dispatch.queues import DOCUMENT_INGESTION_QUEUE
from queue_processor.models.coordination import LockType, ProcessingStatus
from queue_processor.models.results import ErrorCode
from queue_processor.processors.document_processor import DocumentProcessor
from queue_processor.processors.lifecycle_processor import DocumentLifecycleProcessor


@pytest_asyncio.fixture
async def ingested(ctx, make_ingestion_body, make_message):  # noqa: ANN201
    """doc-1 ingested as two chunks."""
    body = make_ingestion_body("doc-1", "one two three four five six", chunkSize=3, overlap=0)
    await DocumentProcessor(ctx).process(make_message(body, message_id="ingest"))
    return "doc-1"


def _update(document_id: str, **changes) -> dict:
    return {"type": "document_update", "documentId": document_id, "changes": changes}


def _delete(document_id: str, hard: bool, reason: str | None = None) -> dict:
    body = {"type": "document_delete", "documentId": document_id, "hardDelete": hard}
    if reason:
        body["reason"] = reason
    return body


class TestDocumentUpdate:
    @pytest.mark.asyncio
    async def test_metadata_change_is_applied_in_place(
        self, ctx, blob_store, vector_index, ingested, make_message
    ) -> None:
        message = make_message(_update("doc-1", metadata={"team": "search", "source": "spoofed"}, acl=["ops"]))

        result = await DocumentLifecycleProcessor(ctx).process(message)

        assert result.success is True
        assert result.metadata == {"action": "metadata_updated", "chunksUpdated": 2}
        for vector_id in ("doc-1#0", "doc-1#1"):
            metadata = (await vector_index.get(vector_id)).metadata
            assert metadata["acl"] == ["ops"]
            assert metadata["team"] == "search"
            assert metadata["source"] == "test"
        chunk = await blob_store.get("chunks/doc-1#1.txt")
        assert chunk.metadata["acl"] == ["ops"]
        assert chunk.metadata["chunk_index"] == 1

    @pytest.mark.asyncio
    async def test_text_change_requeues_forced_ingestion(self, ctx, broker, ingested, make_message) -> None:
        message = make_message(_update("doc-1", text="brand new text"))

        result = await DocumentLifecycleProcessor(ctx).process(message)

        assert result.metadata["action"] == "requeued_for_ingestion"
        batch = await broker.receive_batch(DOCUMENT_INGESTION_QUEUE, 10)
        [queued] = [m.body for m in batch.messages]
        assert queued["document"]["text"] == "brand new text"
        assert queued["document"]["source"] == "test"
        assert queued["options"]["forceReprocess"] is True

    @pytest.mark.asyncio
    async def test_empty_changes_are_a_no_op(self, ctx, ingested, make_message) -> None:
        result = await DocumentLifecycleProcessor(ctx).process(make_message(_update("doc-1")))
        assert result.metadata == {"action": "no_changes"}

    @pytest.mark.asyncio
    async def test_metadata_change_for_unknown_document_fails(self, ctx, make_message) -> None:
        result = await DocumentLifecycleProcessor(ctx).process(make_message(_update("ghost", acl=["x"])))

        assert result.success is False
        assert result.error.code is ErrorCode.DOCUMENT_UPDATE_FAILED
        assert result.retryable is False

    @pytest.mark.asyncio
    async def test_update_waits_for_ingestion_lock(self, ctx, coordinator, ingested, make_message) -> None:
        await coordinator.acquire_lock("doc-1", "ingesting-worker", LockType.PROCESSING)

        result = await DocumentLifecycleProcessor(ctx).process(make_message(_update("doc-1", acl=["x"])))

        assert result.error.code is ErrorCode.LOCK_ACQUISITION_FAILED
        assert result.retryable is True


class TestDocumentDelete:
    @pytest.mark.asyncio
    async def test_hard_delete_removes_everything(
        self, ctx, coordinator, blob_store, vector_index, ingested, make_message
    ) -> None:
        result = await DocumentLifecycleProcessor(ctx).process(make_message(_delete("doc-1", hard=True, reason="gone")))

        assert result.metadata == {"action": "hard_deleted", "vectorsRemoved": 2, "blobsRemoved": 3}
        assert len(vector_index) == 0
        assert len(blob_store) == 0
        state = await coordinator.get_state("doc-1")
        assert state.status is ProcessingStatus.CANCELLED
        assert state.progress.current_step == "deleted"
        assert state.metadata == {"hardDelete": True, "reason": "gone"}
        assert (await coordinator.check_lock("doc-1")).locked is False

    @pytest.mark.asyncio
    async def test_soft_delete_flags_vectors(self, ctx, coordinator, vector_index, ingested, make_message) -> None:
        result = await DocumentLifecycleProcessor(ctx).process(make_message(_delete("doc-1", hard=False)))

        assert result.metadata == {"action": "soft_deleted", "vectorsFlagged": 2}
        assert len(vector_index) == 2
        assert (await vector_index.get("doc-1#0")).metadata["deleted"] is True
        assert (await coordinator.get_state("doc-1")).status is ProcessingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_deleting_unknown_document_still_cancels_state(self, ctx, coordinator, make_message) -> None:
        result = await DocumentLifecycleProcessor(ctx).process(make_message(_delete("ghost", hard=True)))

        assert result.success is True
        assert result.metadata["vectorsRemoved"] == 0
        assert (await coordinator.get_state("ghost")).status is ProcessingStatus.CANCELLED


class TestUnexpectedPayload:
    @pytest.mark.asyncio
    async def test_ingestion_message_is_rejected_without_locking(
        self, ctx, coordinator, make_ingestion_body, make_message
    ) -> None:
        result = await DocumentLifecycleProcessor(ctx).process(make_message(make_ingestion_body("doc-9", "text")))

        assert result.success is False
        assert result.error.code is ErrorCode.INVALID_PAYLOAD
        assert result.retryable is False
        assert (await coordinator.check_lock("doc-9")).locked is False
