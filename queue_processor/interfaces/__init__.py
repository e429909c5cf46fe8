"""Public interface definitions for the queue processor's collaborators.

Coordination logic and processors only talk to storage, embedding,
indexing, queueing and remote-fetch services through the abstract base
classes in this package.  Concrete adapters live in
``queue_processor/providers/`` and are wired in ``queue_processor/main.py``.

CONCRETE PROVIDER MAP:
    Interface           →  Concrete implementations
    ────────────────────────────────────────────────────────────────
    IKeyValueStore      →  MemoryKeyValueStore, SQLiteKeyValueStore
    IEmbeddingProvider  →  HashEmbeddingProvider, OpenAIEmbeddingProvider,
                           FastEmbedEmbeddingProvider
    IBlobStore          →  MemoryBlobStore
    IVectorIndex        →  MemoryVectorIndex, ChromaVectorIndex
    IQueueProducer      →  MemoryQueueBroker
    IContentFetcher     →  WebsiteFetcher, StubSourceFetcher
"""

from queue_processor.interfaces.blob_store import IBlobStore
from queue_processor.interfaces.content_fetcher import IContentFetcher
from queue_processor.interfaces.embedding_provider import IEmbeddingProvider
from queue_processor.interfaces.kv_store import IKeyValueStore
from queue_processor.interfaces.queue_producer import IQueueProducer
from queue_processor.interfaces.vector_index import IVectorIndex

__all__ = [
    "IBlobStore",
    "IContentFetcher",
    "IEmbeddingProvider",
    "IKeyValueStore",
    "IQueueProducer",
    "IVectorIndex",
]
