"""SQLite-backed key-value store.

Persists coordinator records to a local SQLite database (default
``data/coordination.db``) using ``aiosqlite``.  Conditional writes are
single SQL statements, so first-writer-wins and compare-and-set hold
across every process that opens the same file.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from queue_processor.interfaces.kv_store import IKeyValueStore

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/coordination.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_UPSERT_SQL = """\
INSERT INTO kv (key, value) VALUES (?, ?)
ON CONFLICT(key) DO UPDATE SET value      = excluded.value,
                               updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_INSERT_IF_ABSENT_SQL = "INSERT OR IGNORE INTO kv (key, value) VALUES (?, ?);"

_UPDATE_IF_EQUAL_SQL = """\
UPDATE kv SET value = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
WHERE key = ? AND value = ?;
"""

_DELETE_IF_EQUAL_SQL = "DELETE FROM kv WHERE key = ? AND value = ?;"


class SQLiteKeyValueStore(IKeyValueStore):
    """aiosqlite-backed :class:`IKeyValueStore`."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the kv table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_TABLE_SQL)
            await db.commit()
        logger.info("kv_store_initialized", path=str(self._db_path))

    async def get(self, key: str) -> str | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT value FROM kv WHERE key = ?", (key,))
            row = await cursor.fetchone()
        return row[0] if row else None

    async def put(self, key: str, value: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_SQL, (key, value))
            await db.commit()

    async def delete(self, key: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("DELETE FROM kv WHERE key = ?", (key,))
            await db.commit()
            return cursor.rowcount > 0

    async def put_if_absent(self, key: str, value: str) -> str | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_INSERT_IF_ABSENT_SQL, (key, value))
            await db.commit()
            if cursor.rowcount > 0:
                return None
            cursor = await db.execute("SELECT value FROM kv WHERE key = ?", (key,))
            row = await cursor.fetchone()
        # A concurrent delete between the two statements leaves nothing to report.
        return row[0] if row else None

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            if expected is None:
                cursor = await db.execute(_INSERT_IF_ABSENT_SQL, (key, value))
            else:
                cursor = await db.execute(_UPDATE_IF_EQUAL_SQL, (value, key, expected))
            await db.commit()
            return cursor.rowcount > 0

    async def delete_if_equal(self, key: str, expected: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_DELETE_IF_EQUAL_SQL, (key, expected))
            await db.commit()
            return cursor.rowcount > 0

    async def items(self, prefix: str = "") -> list[tuple[str, str]]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            )
            rows = await cursor.fetchall()
        return [(row[0], row[1]) for row in rows]

    def get_provider_name(self) -> str:
        return "sqlite"
