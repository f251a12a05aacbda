"""ModeController protocol - gates delivery during historical catch-up."""

from __future__ import annotations

from typing import Protocol

from near_event_streams.models.records import SyncState


class ModeController(Protocol):
    """Tracks the sync state machine."""

    def get_state(self) -> SyncState:
        """Return current sync state."""
        ...

    def observe(self, is_live: bool) -> SyncState:
        """Feed the source's live signal for the next block; returns the new state."""
        ...

    def should_deliver(self) -> bool:
        """False while catch-up delivery is suppressed."""
        ...
