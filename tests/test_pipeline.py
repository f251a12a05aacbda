"""Tests 61-73: End-to-end pipeline through the indexer daemon."""

from __future__ import annotations

import asyncio

import aiosqlite
import pytest

from near_event_streams.errors import ConfigError, CursorCorruption, DeliveryExhausted, FeedError
from near_event_streams.models.config import ResumeMode
from near_event_streams.models.records import SyncState
from near_event_streams.storage.sqlite import SQLiteCursorStore

from tests.conftest import make_daemon
from tests.factories import (
    block_hash,
    event_log,
    make_chain,
    make_event_message,
    make_message,
    make_outcome_dict,
)
from tests.mocks import CrashingStore, MockSink, MockSource


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


async def committed(db_path: str):
    s = SQLiteCursorStore(db_path)
    await s.initialize()
    try:
        return await s.load()
    finally:
        await s.close()


# ── Test 61: Blocks 100-103 delivered in order ────────────────────


async def test_end_to_end_in_order():
    source = MockSource(make_chain(100, 4, events_per_block=2), live_from=100)
    sink = MockSink()
    daemon = make_daemon(source, sink)

    await daemon.start()

    assert sink.heights == [100, 101, 102, 103]
    assert [(e.block_height, e.data["n"]) for e in sink.events] == [
        (100, 0), (100, 1), (101, 0), (101, 1), (102, 0), (102, 1), (103, 0), (103, 1),
    ]
    cursor = daemon.store.snapshot()
    assert cursor.last_height == 103
    assert cursor.last_hash == block_hash(103)
    assert cursor.mode == SyncState.LIVE
    assert daemon.stats.blocks_processed == 4
    assert daemon.stats.events_delivered == 8
    assert source.closed and sink.closed


# ── Test 62: Resume from interruption ─────────────────────────────


async def test_restart_resumes_after_committed_height(db_path):
    chain = make_chain(100, 7)

    first = MockSink()
    await make_daemon(MockSource(chain[:4], live_from=100), first, db_path=db_path).start()
    assert first.heights == [100, 101, 102, 103]

    second = MockSink()
    source = MockSource(chain, live_from=100)
    await make_daemon(
        source, second, db_path=db_path, sync_mode=ResumeMode.FROM_INTERRUPTION,
    ).start()

    assert source.calls == [104]
    assert second.heights == [104, 105, 106]
    assert (await committed(db_path)).last_height == 106


# ── Test 63: Crash between sink ack and cursor commit ─────────────


async def test_crash_after_ack_redelivers_block(db_path):
    chain = make_chain(100, 4)

    first = MockSink()
    crashing = CrashingStore(db_path, crash_at=102)
    with pytest.raises(OSError, match="simulated crash"):
        await make_daemon(MockSource(chain, live_from=100), first, crashing, db_path=db_path).start()

    # 102 was acknowledged by the sink but never committed
    assert 102 in first.heights
    assert (await committed(db_path)).last_height == 101

    second = MockSink()
    await make_daemon(
        MockSource(chain, live_from=100), second,
        db_path=db_path, sync_mode=ResumeMode.FROM_INTERRUPTION,
    ).start()

    assert second.heights == [102, 103]
    redelivered = [e.key() for e in second.events if e.block_height == 102]
    assert redelivered == [e.key() for e in first.events if e.block_height == 102]


# ── Test 64: Reorg rolls back and switches branch ─────────────────


async def test_reorg_rolls_back_to_ancestor():
    a_chain = make_chain(100, 2)
    b_chain = make_chain(101, 2, branch="b", parent=block_hash(100))
    source = MockSource(a_chain + b_chain[:1], b_chain, live_from=100)
    sink = MockSink()
    store = CrashingStore(":memory:")
    daemon = make_daemon(source, sink, store)

    await daemon.start()

    assert store.resets == [100]
    assert daemon.stats.reorgs == 1
    cursor = store.snapshot()
    assert (cursor.last_height, cursor.last_hash) == (102, block_hash(102, "b"))

    # Nothing from the abandoned branch after the first B block
    hashes = [h for _, h, _ in sink.batches]
    first_b = hashes.index(block_hash(101, "b"))
    assert hashes[first_b:] == [block_hash(101, "b"), block_hash(102, "b")]
    assert all(not e.receipt_id.startswith("a-") for e in sink.events if e.block_height > 100)
    assert sink.heights[0] == 100


# ── Test 65: Suppressed catch-up ──────────────────────────────────


async def test_suppressed_catchup_delivers_only_live_blocks():
    source = MockSource(make_chain(100, 6), live_from=104)
    sink = MockSink()
    daemon = make_daemon(source, sink, suppress_during_catchup=True)

    await daemon.start()

    assert sink.heights == [104, 105]
    cursor = daemon.store.snapshot()
    assert cursor.last_height == 105
    assert cursor.mode == SyncState.LIVE
    assert daemon.stats.blocks_processed == 6


# ── Test 66: Streaming catch-up ───────────────────────────────────


async def test_streaming_catchup_delivers_everything():
    source = MockSource(make_chain(100, 6), live_from=104)
    sink = MockSink()

    await make_daemon(source, sink, suppress_during_catchup=False).start()

    assert sink.heights == [100, 101, 102, 103, 104, 105]


# ── Test 67: Backpressure, status and shutdown at block boundary ──


async def test_slow_sink_stalls_feed_then_clean_stop(db_path):
    gate = asyncio.Event()
    source = MockSource(make_chain(100, 20), live_from=100)
    sink = MockSink(gate=gate)
    daemon = make_daemon(source, sink, db_path=db_path, queue_capacity=2)

    task = asyncio.create_task(daemon.start())
    await wait_until(lambda: sink.calls == 1 and daemon.queue.full())
    await asyncio.sleep(0.05)

    # one block in the sink, the queue full, one block waiting to be enqueued
    assert len(source.yielded) <= 2 + 2
    snap = await daemon.status.get_status()
    assert snap.queue_depth == 2
    assert snap.queue_capacity == 2
    assert snap.cursor is None
    assert snap.sync_state == "live"
    assert snap.to_dict()["stats"]["blocks_processed"] == 0

    await daemon.stop()
    gate.set()
    await asyncio.wait_for(task, timeout=2.0)

    # The in-flight block completed; nothing else was committed
    assert sink.heights == [100]
    assert (await committed(db_path)).last_height == 100

    # Queued blocks are redelivered after restart
    resumed = MockSink()
    await make_daemon(
        MockSource(make_chain(100, 20), live_from=100), resumed,
        db_path=db_path, sync_mode=ResumeMode.FROM_INTERRUPTION,
    ).start()
    assert resumed.heights == list(range(101, 120))


# ── Test 68: Stop while waiting for blocks ────────────────────────


async def test_stop_while_idle():
    source = MockSource(make_chain(100, 2), live_from=100, hang=True)
    sink = MockSink()
    daemon = make_daemon(source, sink)

    task = asyncio.create_task(daemon.start())
    await wait_until(lambda: sink.heights == [100, 101] and daemon.store.snapshot() is not None
                     and daemon.store.snapshot().last_height == 101)

    await daemon.stop()
    await asyncio.wait_for(task, timeout=2.0)

    assert not daemon.running
    assert source.closed


async def test_stop_during_delivery_with_empty_queue(db_path):
    """Stop while the sink holds the only block: it commits, then the daemon exits."""
    gate = asyncio.Event()
    source = MockSource(make_chain(100, 1), live_from=100, hang=True)
    sink = MockSink(gate=gate)
    daemon = make_daemon(source, sink, db_path=db_path)

    task = asyncio.create_task(daemon.start())
    await wait_until(lambda: sink.calls == 1 and daemon.queue.empty())

    await daemon.stop()
    gate.set()
    await asyncio.wait_for(task, timeout=2.0)

    assert sink.heights == [100]
    assert (await committed(db_path)).last_height == 100
    assert source.closed


# ── Test 69: Untracked shards never reach the sink ────────────────


async def test_untracked_shard_events_dropped():
    messages = []
    prev = block_hash(99)
    for height in (100, 101):
        messages.append(make_message(height, prev_hash=prev, shards={
            0: [make_outcome_dict(f"s0-{height}", [event_log("tracked")])],
            1: [make_outcome_dict(f"s1-{height}", [event_log("untracked")])],
        }))
        prev = block_hash(height)
    sink = MockSink()
    daemon = make_daemon(MockSource(messages, live_from=100), sink, tracked_shards=[0])

    await daemon.start()

    assert [e.event_type for e in sink.events] == ["tracked", "tracked"]
    assert {e.shard_id for e in sink.events} == {0}
    assert daemon.stats.outcomes_filtered == 2


# ── Test 70: Malformed log does not stop the block ────────────────


async def test_malformed_log_counted_not_fatal():
    outcome = make_outcome_dict("r1", [event_log("good"), "EVENT_JSON:{oops", event_log("good2")])
    message = make_message(100, shards={0: [outcome]})
    sink = MockSink()
    daemon = make_daemon(MockSource([message], live_from=100), sink)

    await daemon.start()

    assert [e.event_type for e in sink.events] == ["good", "good2"]
    assert daemon.stats.malformed_logs == 1
    assert daemon.store.snapshot().last_height == 100


# ── Test 71: Tracked shard mismatch ───────────────────────────────


async def test_shard_mismatch_is_config_error():
    source = MockSource(make_chain(100, 2), tracked=frozenset({1}))
    sink = MockSink()
    daemon = make_daemon(source, sink, tracked_shards=[0])

    with pytest.raises(ConfigError, match="tracked shards"):
        await daemon.start()

    assert source.calls == []
    assert sink.calls == 0
    assert source.closed


async def test_startup_status_failure_is_retried():
    source = MockSource(
        make_chain(100, 2), live_from=100,
        tracked=frozenset({0}), status_failures=[FeedError("HTTP 502")],
    )
    sink = MockSink()

    await make_daemon(source, sink, tracked_shards=[0]).start()

    assert sink.heights == [100, 101]


# ── Test 72: Corrupt cursor, then explicit height override ────────


async def test_corrupt_cursor_fatal_until_height_override(db_path):
    s = SQLiteCursorStore(db_path)
    await s.initialize()
    await s.close()
    async with aiosqlite.connect(db_path) as db:
        await db.execute(
            "INSERT INTO cursor (id, last_height, last_hash, mode) VALUES (1, -5, '', 'live')"
        )
        await db.commit()

    sink = MockSink()
    with pytest.raises(CursorCorruption):
        await make_daemon(
            MockSource(make_chain(100, 3), live_from=100), sink,
            db_path=db_path, sync_mode=ResumeMode.FROM_INTERRUPTION,
        ).start()
    assert sink.calls == 0

    await make_daemon(
        MockSource(make_chain(100, 3), live_from=100), sink,
        db_path=db_path, sync_mode=ResumeMode.FROM_HEIGHT, start_height=101,
    ).start()
    assert sink.heights == [101, 102]
    assert (await committed(db_path)).last_height == 102


# ── Test 73: Undeliverable block stops the pipeline ───────────────


async def test_delivery_exhausted_is_fatal(db_path):
    chain = [make_event_message(100), make_event_message(101, prev_hash=block_hash(100))]
    sink = MockSink(fail_times=100)
    daemon = make_daemon(MockSource(chain, live_from=100), sink, db_path=db_path)

    with pytest.raises(DeliveryExhausted):
        await daemon.start()

    assert sink.calls == 3
    assert await committed(db_path) is None

    s = SQLiteCursorStore(db_path)
    await s.initialize()
    activity = await s.get_recent_activity(10)
    await s.close()
    assert any(a.event_type == "fatal" for a in activity)
