"""Dict-backed vector index for single-process deployments and tests."""

from __future__ import annotations

from typing import Any

import structlog

from queue_processor.interfaces.vector_index import IVectorIndex
from queue_processor.models.storage import VectorRecord

logger = structlog.get_logger(logger_name=__name__)


class MemoryVectorIndex(IVectorIndex):
    def __init__(self) -> None:
        self._records: dict[str, VectorRecord] = {}

    async def upsert(self, vector_id: str, values: list[float], metadata: dict[str, Any] | None = None) -> None:
        if metadata is None:
            existing = self._records.get(vector_id)
            metadata = dict(existing.metadata) if existing else {}
        self._records[vector_id] = VectorRecord(id=vector_id, values=list(values), metadata=dict(metadata))

    async def update_metadata(self, vector_id: str, metadata: dict[str, Any]) -> bool:
        existing = self._records.get(vector_id)
        if existing is None:
            return False
        self._records[vector_id] = existing.model_copy(update={"metadata": {**existing.metadata, **metadata}})
        return True

    async def get(self, vector_id: str) -> VectorRecord | None:
        return self._records.get(vector_id)

    async def ids_for_document(self, document_id: str) -> list[str]:
        return sorted(
            record.id for record in self._records.values() if record.metadata.get("doc_id") == document_id
        )

    async def delete(self, vector_ids: list[str]) -> int:
        removed = 0
        for vector_id in vector_ids:
            if self._records.pop(vector_id, None) is not None:
                removed += 1
        return removed

    def get_provider_name(self) -> str:
        return "memory"

    def __len__(self) -> int:
        return len(self._records)
