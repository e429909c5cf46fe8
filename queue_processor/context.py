"""Processor context: worker identity, collaborators and observability.

One :class:`QueueProcessorContext` is built per worker process and shared
by the dispatcher and every processor.  It carries:

- ``worker_id`` -- random per process; recorded as the lock holder.
- the coordinator, embedder, blob store, vector index, queue producer and
  per-source fetchers the processors call;
- the tunables processors need (lock TTLs, chunking defaults, reprocess
  sub-batch size and delay);
- :meth:`log_event` / :meth:`log_metric`, which tag every record with
  the worker id and feed metrics into the :class:`MetricsRecorder`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from queue_processor.coordination.coordinator import DocumentCoordinator
from queue_processor.interfaces.blob_store import IBlobStore
from queue_processor.interfaces.content_fetcher import IContentFetcher
from queue_processor.interfaces.embedding_provider import IEmbeddingProvider
from queue_processor.interfaces.queue_producer import IQueueProducer
from queue_processor.interfaces.vector_index import IVectorIndex
from queue_processor.models.coordination import LockType
from queue_processor.models.messages import SourceType
from queue_processor.utils.logging import get_logger
from queue_processor.utils.metrics import MetricsRecorder


@dataclass(frozen=True)
class ProcessingSettings:
    """Tunables consumed by the processors."""

    lock_ttl_processing: int = 1800
    lock_ttl_updating: int = 300
    lock_ttl_deleting: int = 300
    default_chunk_size: int = 1000
    default_chunk_overlap: int = 200
    reprocess_sub_batch_size: int = 5
    reprocess_sub_batch_delay: float = 1.0

    def lock_ttl(self, lock_type: LockType) -> int:
        return {
            LockType.PROCESSING: self.lock_ttl_processing,
            LockType.UPDATING: self.lock_ttl_updating,
            LockType.DELETING: self.lock_ttl_deleting,
        }[lock_type]


@dataclass
class QueueProcessorContext:
    coordinator: DocumentCoordinator
    embedder: IEmbeddingProvider
    blob_store: IBlobStore
    vector_index: IVectorIndex
    producer: IQueueProducer
    fetchers: dict[SourceType, IContentFetcher] = field(default_factory=dict)
    settings: ProcessingSettings = field(default_factory=ProcessingSettings)
    metrics: MetricsRecorder = field(default_factory=MetricsRecorder)
    worker_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        self._logger: structlog.BoundLogger = get_logger("queue_processor.events").bind(
            worker_id=self.worker_id
        )

    def get_coordinator(self, document_id: str) -> DocumentCoordinator:
        """Return the coordinator responsible for *document_id*.

        A single coordinator owns every id today; the hash index is global,
        so sharding would need a separate hash authority.
        """
        return self.coordinator

    def get_fetcher(self, source_type: SourceType) -> IContentFetcher | None:
        return self.fetchers.get(source_type)

    def log_event(self, event: str, **fields: Any) -> None:
        self._logger.info(event, **fields)

    def log_metric(self, name: str, value: float, **tags: Any) -> None:
        self.metrics.record(name, value, tags)
        self._logger.info("metric", metric=name, value=value, tags=tags)
