"""Abstract base class for chunk and original-document storage."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from queue_processor.models.storage import StoredBlob


# Concrete implementations:
#   MemoryBlobStore - dict-backed store for single-process deployments and tests
# Located in: queue_processor/providers/blob_store/
class IBlobStore(ABC):
    """Contract for a key-addressed text blob store.

    Keys used by the processors:
        ``chunks/<documentId>#<index>.txt`` - one chunk's processed text
        ``documents/<documentId>.json``      - the original document as JSON
    """

    @abstractmethod
    async def put(
        self,
        key: str,
        content: str,
        metadata: dict[str, Any] | None = None,
        content_type: str = "text/plain",
    ) -> None:
        """Store *content* under *key*, replacing any previous blob."""

    @abstractmethod
    async def get(self, key: str) -> StoredBlob | None:
        """Return the blob stored under *key*, or ``None``."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove the blob under *key*.  Returns ``True`` if it existed."""

    @abstractmethod
    async def list_keys(self, prefix: str) -> list[str]:
        """Return every key starting with *prefix*, sorted."""
