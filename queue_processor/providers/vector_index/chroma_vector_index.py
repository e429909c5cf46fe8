"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndex`.
Embeddings are always computed by the configured
:class:`IEmbeddingProvider`, so the collection is opened with a no-op
embedding function and never loads a model of its own.

ChromaDB metadata values must be str, int, float or bool; list values
(``acl``) are stored comma-joined and split again on read.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from queue_processor.interfaces.vector_index import IVectorIndex
from queue_processor.models.storage import VectorRecord
from queue_processor.utils.errors import ProviderUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_LIST_FIELDS = frozenset({"acl"})


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that must never be called; vectors are precomputed."""

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("queue processor supplies precomputed embeddings")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaVectorIndex(IVectorIndex):
    """Vector index backed by a persistent ChromaDB collection (cosine space)."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "document_chunks",
    ) -> None:
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            # Collection persisted with a different embedding function.
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    async def upsert(self, vector_id: str, values: list[float], metadata: dict[str, Any] | None = None) -> None:
        def _upsert() -> None:
            if metadata is None:
                existing = self._collection.get(ids=[vector_id], include=[])
                if existing["ids"]:
                    self._collection.update(ids=[vector_id], embeddings=[values])
                    return
            chroma_metadata = self._to_chroma(metadata or {})
            self._collection.upsert(
                ids=[vector_id],
                embeddings=[values],
                metadatas=[chroma_metadata] if chroma_metadata else None,
            )

        await self._run("upsert", _upsert)

    async def update_metadata(self, vector_id: str, metadata: dict[str, Any]) -> bool:
        def _update() -> bool:
            existing = self._collection.get(ids=[vector_id], include=["metadatas"])
            if not existing["ids"]:
                return False
            merged = {**(existing["metadatas"][0] or {}), **self._to_chroma(metadata)}
            self._collection.update(ids=[vector_id], metadatas=[merged])
            return True

        return await self._run("update_metadata", _update)

    async def get(self, vector_id: str) -> VectorRecord | None:
        def _get() -> VectorRecord | None:
            result = self._collection.get(ids=[vector_id], include=["embeddings", "metadatas"])
            if not result["ids"]:
                return None
            return VectorRecord(
                id=vector_id,
                values=[float(v) for v in result["embeddings"][0]],
                metadata=self._from_chroma(result["metadatas"][0] or {}),
            )

        return await self._run("get", _get)

    async def ids_for_document(self, document_id: str) -> list[str]:
        def _ids() -> list[str]:
            result = self._collection.get(where={"doc_id": document_id}, include=[])
            return sorted(result["ids"])

        return await self._run("ids_for_document", _ids)

    async def delete(self, vector_ids: list[str]) -> int:
        if not vector_ids:
            return 0

        def _delete() -> int:
            existing = self._collection.get(ids=vector_ids, include=[])
            if existing["ids"]:
                self._collection.delete(ids=existing["ids"])
            return len(existing["ids"])

        return await self._run("delete", _delete)

    def get_provider_name(self) -> str:
        return "chromadb"

    async def _run(self, operation: str, fn):  # noqa: ANN001, ANN202
        try:
            return await asyncio.to_thread(fn)
        except Exception as exc:
            logger.error("chromadb_operation_failed", operation=operation, error=str(exc))
            raise ProviderUnavailableError(
                message=f"ChromaDB {operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    def _to_chroma(metadata: dict[str, Any]) -> dict[str, str | int | float | bool]:
        flattened: dict[str, str | int | float | bool] = {}
        for key, value in metadata.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                flattened[key] = ",".join(str(v) for v in value)
            elif isinstance(value, (str, int, float, bool)):
                flattened[key] = value
            else:
                flattened[key] = str(value)
        return flattened

    @staticmethod
    def _from_chroma(metadata: dict[str, Any]) -> dict[str, Any]:
        restored = dict(metadata)
        for key in _LIST_FIELDS:
            value = restored.get(key)
            if isinstance(value, str):
                restored[key] = [part for part in value.split(",") if part]
        return restored
