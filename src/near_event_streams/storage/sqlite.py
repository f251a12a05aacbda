"""SQLite implementation of the CursorStore protocol."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from near_event_streams.errors import CursorCorruption, CursorError
from near_event_streams.models.records import ActivityRecord, SyncCursor, SyncState

log = logging.getLogger(__name__)

SCHEMA = """
-- Sync cursor: last fully delivered block
CREATE TABLE IF NOT EXISTS cursor (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_height INTEGER NOT NULL,
    last_hash TEXT NOT NULL,
    mode TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    height INTEGER,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteCursorStore:
    """SQLite-backed cursor store.

    The cursor is a single row written by one upsert per commit, so a reader
    sees either the previous value or the new one. Mutations are serialized
    by a lock; snapshot() only ever returns a value that has been committed.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._committed: SyncCursor | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(self._db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.executescript(SCHEMA)
            await self._db.commit()
        except sqlite3.DatabaseError as exc:
            raise CursorCorruption(f"cannot open cursor database {self._db_path}: {exc}") from exc

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Cursor ─────────────────────────────────────────────

    async def load(self) -> SyncCursor | None:
        try:
            async with self.db.execute("SELECT * FROM cursor WHERE id=1") as cur:
                row = await cur.fetchone()
        except sqlite3.DatabaseError as exc:
            raise CursorCorruption(f"cursor unreadable: {exc}") from exc
        if row is None:
            return None

        height, block_hash, mode = row["last_height"], row["last_hash"], row["mode"]
        if not isinstance(height, int) or isinstance(height, bool) or height < 0:
            raise CursorCorruption(f"cursor has invalid height {height!r}")
        if not isinstance(block_hash, str) or not block_hash:
            raise CursorCorruption("cursor has empty block hash")
        try:
            state = SyncState(mode)
        except ValueError as exc:
            raise CursorCorruption(f"cursor has unknown mode {mode!r}") from exc

        cursor = SyncCursor(
            last_height=height,
            last_hash=block_hash,
            mode=state,
            updated_at=row["updated_at"],
        )
        self._committed = cursor
        return cursor

    async def commit(self, height: int, block_hash: str, mode: SyncState) -> SyncCursor:
        async with self._lock:
            current = self._committed
            if current is not None and height < current.last_height:
                raise CursorError(
                    f"commit would move cursor back from {current.last_height} to {height}"
                )
            cursor = await self._write(height, block_hash, mode)
        log.debug("Committed cursor at %d", height)
        return cursor

    async def reset_to(self, height: int, block_hash: str, mode: SyncState) -> SyncCursor:
        async with self._lock:
            current = self._committed
            if current is not None and height > current.last_height:
                raise CursorError(
                    f"reset would move cursor forward from {current.last_height} to {height}"
                )
            cursor = await self._write(height, block_hash, mode)
        log.warning("Cursor rolled back to %d", height)
        return cursor

    def snapshot(self) -> SyncCursor | None:
        return self._committed

    async def _write(self, height: int, block_hash: str, mode: SyncState) -> SyncCursor:
        cursor = SyncCursor(
            last_height=height, last_hash=block_hash, mode=mode, updated_at=_now(),
        )
        await self.db.execute(
            "INSERT INTO cursor (id, last_height, last_hash, mode, updated_at)"
            " VALUES (1, ?, ?, ?, ?)"
            " ON CONFLICT(id) DO UPDATE SET last_height=excluded.last_height,"
            " last_hash=excluded.last_hash, mode=excluded.mode,"
            " updated_at=excluded.updated_at",
            (cursor.last_height, cursor.last_hash, cursor.mode.value, cursor.updated_at),
        )
        await self.db.commit()
        # Published only after the row is durable
        self._committed = cursor
        return cursor

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self, event_type: str, message: str, height: int | None = None,
    ) -> None:
        async with self._lock:
            await self.db.execute(
                "INSERT INTO activity_log (event_type, height, message, created_at)"
                " VALUES (?, ?, ?, ?)",
                (event_type, height, message, _now()),
            )
            await self.db.commit()

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        async with self.db.execute(
            "SELECT * FROM activity_log ORDER BY id DESC LIMIT ?", (limit,)
        ) as cur:
            return [
                ActivityRecord(
                    id=row["id"],
                    event_type=row["event_type"],
                    height=row["height"],
                    message=row["message"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]
