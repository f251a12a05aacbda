"""Delivery publisher - pushes a block's events to the sink, then commits the cursor."""

from __future__ import annotations

import asyncio
import logging

from near_event_streams.errors import DeliveryExhausted
from near_event_streams.interfaces.sink import EventSink
from near_event_streams.interfaces.store import CursorStore
from near_event_streams.models.config import RetryConfig
from near_event_streams.models.records import DeliveryBatch, SyncCursor
from near_event_streams.stats import Stats

log = logging.getLogger(__name__)


class DeliveryPublisher:
    """Delivers blocks in order with at-least-once semantics.

    The cursor is committed only after the sink acknowledged the block. A
    block that cannot be delivered within the retry ceiling stops the
    pipeline (DeliveryExhausted) instead of being skipped.
    """

    def __init__(
        self,
        sink: EventSink,
        store: CursorStore,
        retry: RetryConfig | None = None,
        sink_timeout: float = 10.0,
        stats: Stats | None = None,
    ) -> None:
        self._sink = sink
        self._store = store
        self._retry = retry or RetryConfig()
        self._sink_timeout = sink_timeout
        self._stats = stats or Stats()

    async def publish(self, batch: DeliveryBatch) -> SyncCursor:
        """Deliver (if the batch is deliverable and non-empty), then commit."""
        if batch.deliver and batch.events:
            await self._deliver(batch)
            self._stats.blocks_delivered += 1
            self._stats.events_delivered += len(batch.events)

        return await self._store.commit(batch.height, batch.block_hash, batch.mode)

    async def _deliver(self, batch: DeliveryBatch) -> None:
        last_error = ""
        retries = self._retry.retries

        for attempt in range(1, retries + 1):
            try:
                await asyncio.wait_for(
                    self._sink.send(batch.events, batch.height, batch.block_hash),
                    timeout=self._sink_timeout,
                )
                log.info(
                    "Delivered %d events for block %d", len(batch.events), batch.height,
                )
                return
            except asyncio.TimeoutError:
                last_error = f"sink timed out after {self._sink_timeout}s"
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__

            if attempt < retries:
                delay = self._retry.delay_for(attempt)
                log.warning(
                    "Delivery of block %d failed (attempt %d/%d), retrying in %.1fs: %s",
                    batch.height, attempt, retries, delay, last_error,
                )
                await asyncio.sleep(delay)

        log.error(
            "Delivery of block %d failed after %d attempts: %s",
            batch.height, retries, last_error,
        )
        raise DeliveryExhausted(batch.height, retries, last_error)
