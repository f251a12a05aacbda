"""Data models for the near_event_streams indexer."""

from near_event_streams.models.chain import BlockHeader, ChunkExecutionOutcome, FeedBlock
from near_event_streams.models.events import (
    Event,
    ExtractionReport,
    ExtractionResult,
    ParsedEvent,
    SkippedMalformed,
)
from near_event_streams.models.records import (
    ActivityRecord,
    DeliveryBatch,
    Rollback,
    SyncCursor,
    SyncState,
)
from near_event_streams.models.config import (
    FeedConfig,
    IndexerConfig,
    ResumeMode,
    RetryConfig,
    SinkConfig,
)
from near_event_streams.models.snapshots import (
    ActivityEntry,
    CursorSnapshot,
    StatsSnapshot,
    StatusSnapshot,
)

__all__ = [
    "BlockHeader", "ChunkExecutionOutcome", "FeedBlock",
    "Event", "ExtractionReport", "ExtractionResult", "ParsedEvent", "SkippedMalformed",
    "ActivityRecord", "DeliveryBatch", "Rollback", "SyncCursor", "SyncState",
    "FeedConfig", "IndexerConfig", "ResumeMode", "RetryConfig", "SinkConfig",
    "ActivityEntry", "CursorSnapshot", "StatsSnapshot", "StatusSnapshot",
]
