"""Indexer daemon - wires the feed, filters, extractor and publisher together."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from contextlib import aclosing

from near_event_streams.api.mode import SyncModeController, resolve_start
from near_event_streams.api.status import StatusAggregator
from near_event_streams.delivery.http_sink import HttpSink
from near_event_streams.delivery.jsonl_sink import JsonlSink
from near_event_streams.delivery.publisher import DeliveryPublisher
from near_event_streams.errors import ConfigError, FatalError, ReorgDetected
from near_event_streams.extraction.extractor import EventExtractor
from near_event_streams.feed.adapter import ChainFeed
from near_event_streams.feed.file_source import FileStreamerSource
from near_event_streams.feed.http_source import HttpStreamerSource
from near_event_streams.interfaces.mode import ModeController
from near_event_streams.interfaces.sink import EventSink
from near_event_streams.interfaces.source import BlockSource
from near_event_streams.interfaces.store import CursorStore
from near_event_streams.models.chain import FeedBlock
from near_event_streams.models.config import IndexerConfig
from near_event_streams.models.records import DeliveryBatch, Rollback
from near_event_streams.policy.filter import ContractFilter, ShardFilter
from near_event_streams.stats import Stats, stats_logger
from near_event_streams.storage.sqlite import SQLiteCursorStore

log = logging.getLogger(__name__)

# Queue marker: the feed ended, nothing more will be produced
_END = object()


def build_source(cfg: IndexerConfig) -> BlockSource:
    if cfg.feed.kind == "file":
        return FileStreamerSource(cfg.feed.path)
    return HttpStreamerSource(
        cfg.feed.url,
        poll_interval=cfg.feed.poll_interval,
        request_timeout=cfg.feed.request_timeout,
    )


def build_sink(cfg: IndexerConfig) -> EventSink:
    if cfg.sink.kind == "jsonl":
        return JsonlSink(cfg.sink.path)
    return HttpSink(
        cfg.sink.url,
        topic_prefix=cfg.sink.topic_prefix,
        timeout=cfg.sink.timeout,
        all_topic=cfg.sink.all_topic,
    )


class IndexerDaemon:
    """Streams events from finalized blocks to a sink, in order, at least once.

    A producer task pulls blocks from the feed, filters shards and extracts
    events; a consumer task delivers each block and commits the cursor. They
    are joined by a bounded queue, so a slow sink stalls block ingestion.
    """

    def __init__(
        self,
        cfg: IndexerConfig,
        source: BlockSource | None = None,
        sink: EventSink | None = None,
        store: CursorStore | None = None,
    ) -> None:
        cfg.validate()
        self._cfg = cfg
        self._running = False
        self._start_time = time.monotonic()
        self._store_ready = False

        self.stats = Stats()

        # Core components
        self.store = store or SQLiteCursorStore(cfg.db_path)
        self.source = source or build_source(cfg)
        self.sink = sink or build_sink(cfg)
        self.feed = ChainFeed(
            self.source,
            retries=cfg.feed.retries,
            base_delay=cfg.delivery.base_delay,
            max_delay=cfg.delivery.max_delay,
        )
        self.shard_filter = ShardFilter(cfg.tracked_shards)
        self.contract_filter = ContractFilter(
            cfg.whitelist_contract_ids, cfg.blacklist_contract_ids,
        )
        self.extractor = EventExtractor()
        self.mode_ctrl: ModeController = SyncModeController(cfg.suppress_during_catchup)
        self.publisher = DeliveryPublisher(
            self.sink, self.store, cfg.delivery, cfg.sink.timeout, self.stats,
        )
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=cfg.queue_capacity)
        self.status = StatusAggregator(
            self.store, self.mode_ctrl, self.source, self.queue,
            self.shard_filter.tracked_shards, self.stats, self._start_time,
        )

        self._producer: asyncio.Task | None = None
        self._consumer: asyncio.Task | None = None
        # True while a stage waits on I/O between blocks; only then may stop() cancel it
        self._producer_idle = False
        self._consumer_idle = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Initialize components and run the pipeline until the feed ends or stop()."""
        log.info("Starting near_event_streams indexer")
        log.info("  Sync mode: %s", self._cfg.sync_mode.value)
        log.info("  Tracked shards: %s", sorted(self.shard_filter.tracked_shards))
        log.info("  Suppress during catch-up: %s", self._cfg.suppress_during_catchup)
        log.info("  Queue capacity: %d", self._cfg.queue_capacity)

        try:
            await self.store.initialize()
            self._store_ready = True

            await self._check_shards()
            start = await resolve_start(self._cfg, self.store)
            if start.anchor is not None:
                self.feed.seed(start.anchor.last_height, start.anchor.last_hash)

            self._running = True
            await self.store.log_activity(
                "indexer_started", f"Indexer started at height {start.height}",
                height=start.height,
            )

            stats_task = asyncio.create_task(
                stats_logger(self.stats, self.source, self._cfg.stats_interval)
            )
            try:
                await self._run_pipeline(start.height)
            finally:
                stats_task.cancel()
                await asyncio.gather(stats_task, return_exceptions=True)

        except FatalError as exc:
            log.error("Fatal: %s", exc)
            if self._store_ready:
                await self.store.log_activity("fatal", str(exc))
            raise

        finally:
            self._running = False
            if self._store_ready:
                await self.store.log_activity("indexer_stopped", "Indexer stopped")
            await self.source.close()
            await self.sink.close()
            await self.store.close()
            self._store_ready = False
            log.info("Indexer shut down cleanly")

    async def stop(self) -> None:
        """Stop at the next block boundary."""
        log.info("Stop requested")
        self._running = False
        if self._producer and self._producer_idle and not self._producer.done():
            self._producer.cancel()
        if self._consumer and self._consumer_idle and not self._consumer.done():
            self._consumer.cancel()

    async def _check_shards(self) -> None:
        reported = await self.feed.tracked_shards()
        expected = self.shard_filter.tracked_shards
        if reported is not None and reported != expected:
            raise ConfigError(
                f"tracked shards mismatch: configured {sorted(expected)}, "
                f"node tracks {sorted(reported)}"
            )

    # ── Pipeline ───────────────────────────────────────────

    async def _run_pipeline(self, start_height: int) -> None:
        self._producer = asyncio.create_task(self._produce(start_height), name="feed")
        self._consumer = asyncio.create_task(self._consume(), name="publisher")
        tasks = (self._consumer, self._producer)
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _produce(self, start_height: int) -> None:
        """Feed -> shard filter -> extractor -> queue."""
        next_height = start_height
        while self._running:
            try:
                self._producer_idle = True
                async with aclosing(self.feed.stream(next_height)) as blocks:
                    async for block in blocks:
                        self._producer_idle = False
                        if not self._running:
                            return
                        batch = self._prepare(block)
                        self._producer_idle = True
                        await self.queue.put(batch)
                        if not self._running:
                            return
                log.info("Feed ended")
                await self.queue.put(_END)
                return

            except ReorgDetected as reorg:
                self._producer_idle = False
                self.stats.reorgs += 1
                purged = self._purge_above(reorg.ancestor_height)
                self.feed.rewind(reorg.ancestor_height, reorg.ancestor_hash)
                await self.store.log_activity(
                    "reorg",
                    f"Reorg at {reorg.height}, rolling back to {reorg.ancestor_height}"
                    f" ({purged} queued blocks discarded)",
                    height=reorg.ancestor_height,
                )
                self._producer_idle = True
                await self.queue.put(Rollback(
                    reorg.ancestor_height, reorg.ancestor_hash, self.mode_ctrl.get_state(),
                ))
                next_height = reorg.ancestor_height + 1

    def _prepare(self, block: FeedBlock) -> DeliveryBatch:
        state = self.mode_ctrl.observe(not block.historical)
        outcomes, dropped = self.shard_filter.apply(block.outcomes)
        self.stats.outcomes_filtered += dropped

        if not self.mode_ctrl.should_deliver():
            # Suppressed catch-up: advance the cursor, skip extraction and delivery
            return DeliveryBatch(block.height, block.header.hash, deliver=False, mode=state)

        outcomes = self.contract_filter.apply(outcomes)
        report = self.extractor.extract_block(block.header, outcomes)
        self.stats.malformed_logs += report.malformed_count
        return DeliveryBatch(block.height, block.header.hash, report.events, mode=state)

    def _purge_above(self, height: int) -> int:
        """Drop queued, undelivered batches above a reorg's common ancestor."""
        kept = []
        purged = 0
        while True:
            try:
                item = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if isinstance(item, DeliveryBatch) and item.height > height:
                purged += 1
                continue
            kept.append(item)
        for item in kept:
            self.queue.put_nowait(item)
        return purged

    async def _consume(self) -> None:
        """Queue -> publisher -> cursor commit, strictly in order."""
        while True:
            # stop() may have landed while a block was in flight
            if not self._running:
                return
            self._consumer_idle = True
            item = await self.queue.get()
            self._consumer_idle = False

            if item is _END:
                log.info("All blocks delivered")
                return
            if not self._running:
                return

            if isinstance(item, Rollback):
                await self.store.reset_to(item.height, item.block_hash, item.mode)
                continue

            await self.publisher.publish(item)
            self.stats.block_done(item.height)


async def run_daemon(cfg: IndexerConfig) -> None:
    """Entry point for running the daemon."""
    daemon = IndexerDaemon(cfg)

    loop = asyncio.get_running_loop()

    def _signal_handler():
        asyncio.ensure_future(daemon.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await daemon.start()
