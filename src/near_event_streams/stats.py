"""Processing stats and the periodic stats logger."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from near_event_streams.interfaces.source import BlockSource
from near_event_streams.models.snapshots import StatsSnapshot

log = logging.getLogger(__name__)


@dataclass
class Stats:
    """Counters shared by the pipeline stages (single event loop, no locking)."""

    blocks_processed: int = 0
    blocks_delivered: int = 0
    events_delivered: int = 0
    malformed_logs: int = 0
    outcomes_filtered: int = 0
    reorgs: int = 0
    last_processed_height: int | None = None

    def block_done(self, height: int) -> None:
        self.blocks_processed += 1
        self.last_processed_height = height

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            blocks_processed=self.blocks_processed,
            blocks_delivered=self.blocks_delivered,
            events_delivered=self.events_delivered,
            malformed_logs=self.malformed_logs,
            outcomes_filtered=self.outcomes_filtered,
            reorgs=self.reorgs,
            last_processed_height=self.last_processed_height,
        )


def format_progress(
    stats: Stats, prev_processed: int, interval: float, latest_height: int | None,
) -> str:
    """One progress line: height, throughput, and time to catch the tip."""
    bps = (stats.blocks_processed - prev_processed) / interval if interval > 0 else 0.0
    line = (
        f"# {stats.last_processed_height} | Blocks done: {stats.blocks_processed}"
        f" | Events: {stats.events_delivered} | Bps {bps:.2f} b/s"
    )
    if bps > 0 and latest_height is not None and stats.last_processed_height is not None:
        remaining = max(latest_height - stats.last_processed_height, 0)
        eta = timedelta(seconds=int(remaining / bps))
        line += f" | {eta} to catch up the tip"
    return line


async def stats_logger(stats: Stats, source: BlockSource, interval: float = 10) -> None:
    """Log progress every `interval` seconds until cancelled."""
    prev_processed = stats.blocks_processed
    while True:
        try:
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            break
        log.info(format_progress(stats, prev_processed, interval, source.latest_height))
        prev_processed = stats.blocks_processed
