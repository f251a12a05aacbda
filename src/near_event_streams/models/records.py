"""Internal record types for cursor persistence and pipeline hand-off."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from near_event_streams.models.events import Event


class SyncState(str, Enum):
    """Sync mode controller states."""

    INITIALIZING = "initializing"
    CATCHING_UP_SUPPRESSED = "catching_up_suppressed"  # advance cursor, no delivery
    CATCHING_UP_STREAMING = "catching_up_streaming"  # full pipeline during backlog
    LIVE = "live"


@dataclass(frozen=True)
class SyncCursor:
    """Last committed progress. One row, owned by the cursor store."""

    last_height: int
    last_hash: str
    mode: SyncState
    updated_at: str = ""


@dataclass
class DeliveryBatch:
    """Events of one block, queued between the feed and the publisher."""

    height: int
    block_hash: str
    events: list[Event] = field(default_factory=list)
    deliver: bool = True  # False while catch-up is suppressed
    mode: SyncState = SyncState.INITIALIZING


@dataclass(frozen=True)
class Rollback:
    """Queue marker: reset the cursor to the common ancestor of a reorg."""

    height: int
    block_hash: str
    mode: SyncState = SyncState.INITIALIZING


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    height: int | None
    message: str
    created_at: str
