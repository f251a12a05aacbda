"""Status aggregator - builds read-only snapshots of pipeline state."""

from __future__ import annotations

import asyncio
import logging
import time

from near_event_streams.interfaces.mode import ModeController
from near_event_streams.interfaces.source import BlockSource
from near_event_streams.interfaces.store import CursorStore
from near_event_streams.models.records import SyncCursor
from near_event_streams.models.snapshots import ActivityEntry, CursorSnapshot, StatusSnapshot
from near_event_streams.stats import Stats

log = logging.getLogger(__name__)


def _cursor_to_snapshot(cursor: SyncCursor | None) -> CursorSnapshot | None:
    if cursor is None:
        return None
    return CursorSnapshot(
        last_height=cursor.last_height,
        last_hash=cursor.last_hash,
        mode=cursor.mode.value,
        updated_at=cursor.updated_at,
    )


class StatusAggregator:
    """Builds JSON-serializable status snapshots.

    Reads only committed state: the cursor comes from the store's snapshot,
    never from blocks still in flight.
    """

    def __init__(
        self,
        store: CursorStore,
        mode_ctrl: ModeController,
        source: BlockSource,
        queue: asyncio.Queue,
        tracked_shards: frozenset[int],
        stats: Stats,
        start_time: float | None = None,
    ) -> None:
        self._store = store
        self._mode_ctrl = mode_ctrl
        self._source = source
        self._queue = queue
        self._tracked_shards = tracked_shards
        self._stats = stats
        self._start_time = start_time or time.monotonic()

    async def get_status(self, activity_limit: int = 20) -> StatusSnapshot:
        activity = await self._store.get_recent_activity(activity_limit)
        return StatusSnapshot(
            sync_state=self._mode_ctrl.get_state().value,
            cursor=_cursor_to_snapshot(self._store.snapshot()),
            tracked_shards=sorted(self._tracked_shards),
            queue_depth=self._queue.qsize(),
            queue_capacity=self._queue.maxsize,
            source_live=self._source.is_live,
            source_latest_height=self._source.latest_height,
            uptime_seconds=int(time.monotonic() - self._start_time),
            stats=self._stats.snapshot(),
            recent_activity=[
                ActivityEntry(
                    timestamp=a.created_at,
                    event_type=a.event_type,
                    height=a.height,
                    message=a.message,
                )
                for a in activity
            ],
        )
