"""Key-value stores backing the Lock Table, State Store and Content Hash Index."""

from queue_processor.providers.kv_store.memory_kv_store import MemoryKeyValueStore
from queue_processor.providers.kv_store.sqlite_kv_store import SQLiteKeyValueStore

__all__ = ["MemoryKeyValueStore", "SQLiteKeyValueStore"]
