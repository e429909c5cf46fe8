"""Abstract base class for the chunk vector index.

Vector ids are chunk ids (``<documentId>#<index>``); every vector carries
chunk metadata including ``doc_id`` so all vectors of one document can be
found again for metadata updates and deletion.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from queue_processor.models.storage import VectorRecord


# Concrete implementations:
#   MemoryVectorIndex  - dict-backed index for single-process deployments and tests
#   ChromaVectorIndex  - persistent ChromaDB collection (optional extra)
# Located in: queue_processor/providers/vector_index/
class IVectorIndex(ABC):
    """Contract for upserting and maintaining chunk vectors."""

    @abstractmethod
    async def upsert(self, vector_id: str, values: list[float], metadata: dict[str, Any] | None = None) -> None:
        """Insert or replace a vector.

        When *metadata* is ``None`` and the vector already exists, its
        stored metadata is kept (embedding-only refresh).
        """

    @abstractmethod
    async def update_metadata(self, vector_id: str, metadata: dict[str, Any]) -> bool:
        """Merge *metadata* into the stored metadata.  Returns ``False`` if the id is unknown."""

    @abstractmethod
    async def get(self, vector_id: str) -> VectorRecord | None:
        """Return the stored vector, or ``None``."""

    @abstractmethod
    async def ids_for_document(self, document_id: str) -> list[str]:
        """Return the ids of every vector whose ``doc_id`` metadata is *document_id*."""

    @abstractmethod
    async def delete(self, vector_ids: list[str]) -> int:
        """Remove vectors by id.  Returns the number removed."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"chromadb"``."""
