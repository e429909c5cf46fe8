"""Unit tests for DocumentProcessor: dedup, chunking, embedding, progress and failure paths."""

from __future__ import annotations

import pytest

from queue_processor.models.coordination import LockType, ProcessingStatus
from queue_processor.models.results import ErrorCode
from queue_processor.processors.document_processor import DocumentProcessor, embedding_percentage
from queue_processor.utils.errors import RateLimitError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(count))


class TestEmbeddingPercentage:
    @pytest.mark.parametrize(
        "done, total, expected",
        [(1, 1, 90), (1, 3, 63), (2, 3, 77), (3, 3, 90), (1, 8, 55), (1, 16, 53)],
    )
    def test_linear_between_50_and_90(self, done: int, total: int, expected: int) -> None:
        assert embedding_percentage(done, total) == expected


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestIngestion:
    @pytest.mark.asyncio
    async def test_single_chunk_document(
        self, ctx, coordinator, embedder, blob_store, vector_index, make_ingestion_body, make_message
    ) -> None:
        message = make_message(make_ingestion_body("doc-1", "hello world", chunkSize=100))

        result = await DocumentProcessor(ctx).process(message)

        assert result.success is True
        assert result.chunks_processed == 1
        assert result.embeddings_generated == 1
        assert embedder.calls == ["hello world"]
        assert blob_store.chunk_puts == ["chunks/doc-1#0.txt"]
        assert vector_index.upserted == ["doc-1#0"]

        state = await coordinator.get_state("doc-1")
        assert state.status is ProcessingStatus.COMPLETED
        assert state.progress.percentage == 100
        assert state.progress.steps_completed == 4
        assert state.completed_at is not None
        assert (await coordinator.check_lock("doc-1")).locked is False

    @pytest.mark.asyncio
    async def test_chunk_metadata_and_original_are_stored(
        self, ctx, blob_store, vector_index, make_message
    ) -> None:
        body = {
            "type": "document_ingestion",
            "document": {
                "id": "doc-1",
                "text": "some   text\n\nhere",
                "source": "website",
                "url": "https://example.com/a",
                "metadata": {"acl": ["team-a"]},
            },
        }

        await DocumentProcessor(ctx).process(make_message(body))

        chunk = await blob_store.get("chunks/doc-1#0.txt")
        assert chunk.content == "some text here"
        assert chunk.metadata["doc_id"] == "doc-1"
        assert chunk.metadata["chunk_index"] == 0
        assert chunk.metadata["acl"] == ["team-a"]
        assert chunk.metadata["url"] == "https://example.com/a"
        vector = await vector_index.get("doc-1#0")
        assert vector.metadata == chunk.metadata

        original = await blob_store.get("documents/doc-1.json")
        assert original.content_type == "application/json"
        assert "contentHash" in original.metadata

    @pytest.mark.asyncio
    async def test_progress_moves_through_every_step(self, ctx, coordinator, make_message) -> None:
        seen: list[tuple[str, int]] = []
        coordinator.notifier.register_listener(
            lambda s: seen.append((s.progress.current_step, s.progress.percentage)), document_id="doc-1"
        )
        body = {
            "type": "document_ingestion",
            "document": {"id": "doc-1", "text": _words(250), "source": "test"},
            "options": {"chunkSize": 100, "overlap": 0},
        }

        result = await DocumentProcessor(ctx).process(make_message(body))

        assert result.chunks_processed == 3
        assert seen == [
            ("preprocessing", 0),
            ("chunking", 25),
            ("embedding", 50),
            ("embedding", 63),
            ("embedding", 77),
            ("embedding", 90),
            ("completed", 100),
        ]

    @pytest.mark.asyncio
    async def test_chunk_size_only_uses_proportional_overlap(self, ctx, embedder, make_message) -> None:
        body = {
            "type": "document_ingestion",
            "document": {"id": "doc-1", "text": _words(15), "source": "test"},
            "options": {"chunkSize": 10},
        }

        result = await DocumentProcessor(ctx).process(make_message(body))

        # overlap = 10 // 5 = 2, so windows start at words 0 and 8
        assert result.chunks_processed == 2
        assert embedder.calls[1].split()[0] == "w8"

    @pytest.mark.asyncio
    async def test_reingesting_shorter_text_prunes_stale_chunks(
        self, ctx, blob_store, vector_index, make_message
    ) -> None:
        processor = DocumentProcessor(ctx)
        long_body = {
            "type": "document_ingestion",
            "document": {"id": "doc-1", "text": _words(30), "source": "test"},
            "options": {"chunkSize": 10, "overlap": 0},
        }
        short_body = {
            "type": "document_ingestion",
            "document": {"id": "doc-1", "text": _words(5, prefix="v"), "source": "test"},
            "options": {"chunkSize": 10, "overlap": 0},
        }

        await processor.process(make_message(long_body))
        await processor.process(make_message(short_body, message_id="msg-2"))

        assert await blob_store.list_keys("chunks/doc-1#") == ["chunks/doc-1#0.txt"]
        assert await vector_index.ids_for_document("doc-1") == ["doc-1#0"]


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_duplicate_content_is_skipped_without_embedding(
        self, ctx, embedder, make_ingestion_body, make_message
    ) -> None:
        processor = DocumentProcessor(ctx)
        await processor.process(make_message(make_ingestion_body("doc-1", "same text")))
        embedder.calls.clear()

        result = await processor.process(make_message(make_ingestion_body("doc-2", "same text"), "msg-2"))

        assert result.success is True
        assert result.metadata == {"action": "skipped_duplicate", "existingDocumentId": "doc-1"}
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_force_reprocess_ingests_duplicate(self, ctx, embedder, make_ingestion_body, make_message) -> None:
        processor = DocumentProcessor(ctx)
        await processor.process(make_message(make_ingestion_body("doc-1", "same text")))
        embedder.calls.clear()

        result = await processor.process(
            make_message(make_ingestion_body("doc-2", "same text", forceReprocess=True), "msg-2")
        )

        assert result.chunks_processed == 1
        assert embedder.calls == ["same text"]

    @pytest.mark.asyncio
    async def test_same_document_again_is_reprocessed(self, ctx, embedder, make_ingestion_body, make_message) -> None:
        processor = DocumentProcessor(ctx)
        await processor.process(make_message(make_ingestion_body("doc-1", "same text")))
        await processor.process(make_message(make_ingestion_body("doc-1", "same text"), "msg-2"))

        assert embedder.calls == ["same text", "same text"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_lock_held_elsewhere_is_retryable(
        self, ctx, coordinator, embedder, make_ingestion_body, make_message
    ) -> None:
        await coordinator.acquire_lock("doc-1", "other-worker", LockType.PROCESSING)

        result = await DocumentProcessor(ctx).process(make_message(make_ingestion_body("doc-1", "hello")))

        assert result.success is False
        assert result.error.code is ErrorCode.LOCK_ACQUISITION_FAILED
        assert result.retryable is True
        assert embedder.calls == []
        assert await coordinator.get_state("doc-1") is None

    @pytest.mark.asyncio
    async def test_transient_embedding_failure_is_retryable_and_recorded(
        self, ctx, coordinator, embedder, make_ingestion_body, make_message, monkeypatch
    ) -> None:
        async def _rate_limited(texts: list[str]) -> list[list[float]]:
            raise RateLimitError("Rate limit exceeded", provider_name="embedding")

        monkeypatch.setattr(embedder, "embed", _rate_limited)

        result = await DocumentProcessor(ctx).process(make_message(make_ingestion_body("doc-1", "hello")))

        assert result.error.code is ErrorCode.PROCESSING_FAILED
        assert result.retryable is True
        state = await coordinator.get_state("doc-1")
        assert state.status is ProcessingStatus.FAILED
        assert state.progress.current_step == "failed"
        assert "Rate limit" in state.error
        assert (await coordinator.check_lock("doc-1")).locked is False

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retryable(
        self, ctx, embedder, make_ingestion_body, make_message, monkeypatch
    ) -> None:
        async def _broken(texts: list[str]) -> list[list[float]]:
            raise ValueError("vector dimension mismatch")

        monkeypatch.setattr(embedder, "embed", _broken)

        result = await DocumentProcessor(ctx).process(make_message(make_ingestion_body("doc-1", "hello")))

        assert result.success is False
        assert result.retryable is False
        assert result.error.message == "vector dimension mismatch"
