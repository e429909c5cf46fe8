"""Abstract base class for the coordinator's key-value storage.

Every operation is atomic for a single key.  The conditional writes
(:meth:`put_if_absent`, :meth:`compare_and_set`, :meth:`delete_if_equal`)
let the coordinator keep its first-writer-wins and re-check-on-delete
guarantees even when several processes share one backing store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   MemoryKeyValueStore  - dict in the current process
#   SQLiteKeyValueStore  - aiosqlite table, shared by processes on one host
# Located in: queue_processor/providers/kv_store/
class IKeyValueStore(ABC):
    """Contract for string-keyed, string-valued storage with per-key atomicity."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored under *key*, or ``None``."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any existing value."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove *key*.  Returns ``True`` if a value was removed."""

    @abstractmethod
    async def put_if_absent(self, key: str, value: str) -> str | None:
        """Store *value* only when *key* has no value.

        Returns
        -------
        str | None
            ``None`` when the write happened, otherwise the value that was
            already stored (which is left untouched).
        """

    @abstractmethod
    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        """Replace the value of *key* with *value* if it currently equals *expected*.

        ``expected=None`` means "only if absent".  Returns ``True`` when the
        write happened.
        """

    @abstractmethod
    async def delete_if_equal(self, key: str, expected: str) -> bool:
        """Remove *key* only while its value still equals *expected*."""

    @abstractmethod
    async def items(self, prefix: str = "") -> list[tuple[str, str]]:
        """Return every ``(key, value)`` pair whose key starts with *prefix*."""

    async def initialize(self) -> None:
        """Prepare the backing store (create tables, open files)."""

    async def close(self) -> None:
        """Release resources held by the store."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Short identifier used in logs and error messages."""
