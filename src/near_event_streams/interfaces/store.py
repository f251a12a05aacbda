"""CursorStore protocol - durable single-record sync progress."""

from __future__ import annotations

from typing import Protocol

from near_event_streams.models.records import ActivityRecord, SyncCursor, SyncState


class CursorStore(Protocol):
    """Persists the sync cursor for crash recovery."""

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    # ── Cursor ─────────────────────────────────────────────

    async def load(self) -> SyncCursor | None:
        """Read the persisted cursor. Raises CursorCorruption if unreadable."""
        ...

    async def commit(self, height: int, block_hash: str, mode: SyncState) -> SyncCursor:
        """Atomically advance the cursor. Never moves it backwards."""
        ...

    async def reset_to(self, height: int, block_hash: str, mode: SyncState) -> SyncCursor:
        """Roll the cursor back to a reorg's common ancestor."""
        ...

    def snapshot(self) -> SyncCursor | None:
        """Last fully committed cursor, for concurrent readers."""
        ...

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self, event_type: str, message: str, height: int | None = None,
    ) -> None:
        ...

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        ...
