"""JSON-serializable snapshot models for status readers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class CursorSnapshot:
    last_height: int
    last_hash: str
    mode: str
    updated_at: str


@dataclass
class StatsSnapshot:
    blocks_processed: int = 0
    blocks_delivered: int = 0
    events_delivered: int = 0
    malformed_logs: int = 0
    outcomes_filtered: int = 0
    reorgs: int = 0
    last_processed_height: int | None = None


@dataclass
class ActivityEntry:
    timestamp: str
    event_type: str
    height: int | None
    message: str


@dataclass
class StatusSnapshot:
    """Everything a status reader needs in one call."""

    sync_state: str
    cursor: CursorSnapshot | None
    tracked_shards: list[int]
    queue_depth: int
    queue_capacity: int
    source_live: bool
    source_latest_height: int | None
    uptime_seconds: int
    stats: StatsSnapshot = field(default_factory=StatsSnapshot)
    recent_activity: list[ActivityEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
