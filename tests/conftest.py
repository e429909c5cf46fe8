"""Shared pytest fixtures for the queue processor test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from queue_processor.context import ProcessingSettings, QueueProcessorContext
from queue_processor.coordination.coordinator import DocumentCoordinator
from queue_processor.dispatch.dispatcher import BatchDispatcher
from queue_processor.models.messages import QueueMessage, SourceType
from queue_processor.providers.blob_store.memory_blob_store import MemoryBlobStore
from queue_processor.providers.embedding.hash_embedding_provider import HashEmbeddingProvider
from queue_processor.providers.fetcher.stub_fetcher import StubSourceFetcher
from queue_processor.providers.kv_store.memory_kv_store import MemoryKeyValueStore
from queue_processor.providers.queue.memory_broker import MemoryQueueBroker
from queue_processor.providers.vector_index.memory_vector_index import MemoryVectorIndex

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Mutable UTC clock injected into the coordinator."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs: float) -> None:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)


class CountingEmbedder(HashEmbeddingProvider):
    """Hash embedder that records every text it was asked to embed."""

    def __init__(self, dimension: int = 16) -> None:
        super().__init__(dimension=dimension)
        self.calls: list[str] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.extend(texts)
        return await super().embed(texts)


class CountingBlobStore(MemoryBlobStore):
    def __init__(self) -> None:
        super().__init__()
        self.put_keys: list[str] = []

    async def put(self, key: str, content: str, metadata: dict[str, Any] | None = None, content_type: str = "text/plain") -> None:
        self.put_keys.append(key)
        await super().put(key, content, metadata, content_type)

    @property
    def chunk_puts(self) -> list[str]:
        return [k for k in self.put_keys if k.startswith("chunks/")]


class CountingVectorIndex(MemoryVectorIndex):
    def __init__(self) -> None:
        super().__init__()
        self.upserted: list[str] = []

    async def upsert(self, vector_id: str, values: list[float], metadata: dict[str, Any] | None = None) -> None:
        self.upserted.append(vector_id)
        await super().upsert(vector_id, values, metadata)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def coordinator(kv_store: MemoryKeyValueStore, clock: FakeClock) -> DocumentCoordinator:
    return DocumentCoordinator(kv_store, clock=clock)


@pytest.fixture
def embedder() -> CountingEmbedder:
    return CountingEmbedder()


@pytest.fixture
def blob_store() -> CountingBlobStore:
    return CountingBlobStore()


@pytest.fixture
def vector_index() -> CountingVectorIndex:
    return CountingVectorIndex()


@pytest.fixture
def broker() -> MemoryQueueBroker:
    return MemoryQueueBroker()


@pytest.fixture
def processing_settings() -> ProcessingSettings:
    return ProcessingSettings(reprocess_sub_batch_delay=0.0)


@pytest.fixture
def ctx(
    coordinator: DocumentCoordinator,
    embedder: CountingEmbedder,
    blob_store: CountingBlobStore,
    vector_index: CountingVectorIndex,
    broker: MemoryQueueBroker,
    processing_settings: ProcessingSettings,
) -> QueueProcessorContext:
    return QueueProcessorContext(
        coordinator=coordinator,
        embedder=embedder,
        blob_store=blob_store,
        vector_index=vector_index,
        producer=broker,
        fetchers={
            SourceType.SHAREPOINT: StubSourceFetcher(SourceType.SHAREPOINT),
            SourceType.CONFLUENCE: StubSourceFetcher(SourceType.CONFLUENCE),
            SourceType.JIRA: StubSourceFetcher(SourceType.JIRA),
        },
        settings=processing_settings,
        worker_id="worker-test",
    )


@pytest.fixture
def dispatcher(ctx: QueueProcessorContext) -> BatchDispatcher:
    return BatchDispatcher(ctx)


@pytest.fixture
def make_ingestion_body():  # noqa: ANN201
    """Build a ``document_ingestion`` queue body as a producer would send it."""

    def _make(document_id: str, text: str, **options: Any) -> dict[str, Any]:
        return {
            "type": "document_ingestion",
            "document": {"id": document_id, "text": text, "source": "test", "metadata": {"acl": ["team-a"]}},
            "options": options,
        }

    return _make


@pytest.fixture
def make_message():  # noqa: ANN201
    """Wrap a queue body in the envelope the dispatcher hands to processors."""

    def _make(body: dict[str, Any], message_id: str = "msg-1", attempts: int = 1) -> QueueMessage:
        return QueueMessage.model_validate(
            {
                "type": body["type"],
                "payload": body,
                "metadata": {"correlationId": message_id, "retryCount": attempts, "maxRetries": 3},
            }
        )

    return _make
