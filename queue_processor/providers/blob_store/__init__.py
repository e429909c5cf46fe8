"""Blob stores for chunk text and original documents."""

from queue_processor.providers.blob_store.memory_blob_store import MemoryBlobStore

__all__ = ["MemoryBlobStore"]
