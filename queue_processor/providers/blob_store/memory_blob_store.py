"""Dict-backed blob store for single-process deployments and tests."""

from __future__ import annotations

from typing import Any

import structlog

from queue_processor.interfaces.blob_store import IBlobStore
from queue_processor.models.storage import StoredBlob

logger = structlog.get_logger(logger_name=__name__)


class MemoryBlobStore(IBlobStore):
    def __init__(self) -> None:
        self._blobs: dict[str, StoredBlob] = {}

    async def put(
        self,
        key: str,
        content: str,
        metadata: dict[str, Any] | None = None,
        content_type: str = "text/plain",
    ) -> None:
        self._blobs[key] = StoredBlob(
            key=key,
            content=content,
            metadata=dict(metadata or {}),
            content_type=content_type,
        )
        logger.debug("blob_put", key=key, size=len(content))

    async def get(self, key: str) -> StoredBlob | None:
        return self._blobs.get(key)

    async def delete(self, key: str) -> bool:
        return self._blobs.pop(key, None) is not None

    async def list_keys(self, prefix: str) -> list[str]:
        return sorted(k for k in self._blobs if k.startswith(prefix))

    def __len__(self) -> int:
        return len(self._blobs)
