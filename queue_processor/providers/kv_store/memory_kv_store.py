"""In-memory key-value store.

Each method body runs without an ``await`` between read and write, so on
a single event loop every operation is atomic for its key.  State is lost
on restart and is not shared with other processes; use
:class:`~queue_processor.providers.kv_store.sqlite_kv_store.SQLiteKeyValueStore`
when several workers share a host.
"""

from __future__ import annotations

import structlog

from queue_processor.interfaces.kv_store import IKeyValueStore

logger = structlog.get_logger(logger_name=__name__)


class MemoryKeyValueStore(IKeyValueStore):
    """Dict-backed :class:`IKeyValueStore`."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def put_if_absent(self, key: str, value: str) -> str | None:
        existing = self._data.get(key)
        if existing is not None:
            return existing
        self._data[key] = value
        return None

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        if self._data.get(key) != expected:
            return False
        self._data[key] = value
        return True

    async def delete_if_equal(self, key: str, expected: str) -> bool:
        if self._data.get(key) != expected:
            return False
        del self._data[key]
        return True

    async def items(self, prefix: str = "") -> list[tuple[str, str]]:
        return [(k, v) for k, v in self._data.items() if k.startswith(prefix)]

    def get_provider_name(self) -> str:
        return "memory"

    def __len__(self) -> int:
        return len(self._data)
