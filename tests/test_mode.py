"""Tests 23-29: Start resolution and the sync state machine."""

from __future__ import annotations

import pytest

from near_event_streams.api.mode import SyncModeController, resolve_start
from near_event_streams.errors import ConfigError
from near_event_streams.models.config import ResumeMode
from near_event_streams.models.records import SyncState

from tests.conftest import make_test_config
from tests.factories import block_hash


# ── Test 23: From genesis ─────────────────────────────────────────


async def test_resolve_from_genesis_ignores_cursor(store):
    await store.commit(500, block_hash(500), SyncState.LIVE)
    cfg = make_test_config(sync_mode=ResumeMode.FROM_GENESIS, genesis_height=9)

    start = await resolve_start(cfg, store)

    assert start.height == 9
    assert start.anchor is None


# ── Test 24: From interruption ────────────────────────────────────


async def test_resolve_from_interruption_uses_cursor(store):
    await store.commit(500, block_hash(500), SyncState.LIVE)
    cfg = make_test_config(sync_mode=ResumeMode.FROM_INTERRUPTION)

    start = await resolve_start(cfg, store)

    assert start.height == 501
    assert start.anchor.last_hash == block_hash(500)


async def test_resolve_from_interruption_without_cursor(store):
    cfg = make_test_config(sync_mode=ResumeMode.FROM_INTERRUPTION, genesis_height=42)
    start = await resolve_start(cfg, store)
    assert start.height == 42
    assert start.anchor is None


# ── Test 25: From height ──────────────────────────────────────────


async def test_resolve_from_height(store):
    await store.commit(500, block_hash(500), SyncState.LIVE)
    cfg = make_test_config(sync_mode=ResumeMode.FROM_HEIGHT, start_height=250)

    start = await resolve_start(cfg, store)

    assert start.height == 250
    assert start.anchor is None


def test_from_height_requires_height():
    cfg = make_test_config(sync_mode=ResumeMode.FROM_HEIGHT, start_height=None)
    with pytest.raises(ConfigError):
        cfg.validate()


# ── Test 26: Suppressed catch-up ──────────────────────────────────


def test_suppressed_catchup_then_live():
    ctrl = SyncModeController(suppress_during_catchup=True)
    assert ctrl.get_state() == SyncState.INITIALIZING

    assert ctrl.observe(is_live=False) == SyncState.CATCHING_UP_SUPPRESSED
    assert not ctrl.should_deliver()

    assert ctrl.observe(is_live=True) == SyncState.LIVE
    assert ctrl.should_deliver()


# ── Test 27: Streaming catch-up ───────────────────────────────────


def test_streaming_catchup_delivers():
    ctrl = SyncModeController(suppress_during_catchup=False)
    assert ctrl.observe(is_live=False) == SyncState.CATCHING_UP_STREAMING
    assert ctrl.should_deliver()


# ── Test 28: Live is sticky ───────────────────────────────────────


def test_live_is_never_left():
    ctrl = SyncModeController(suppress_during_catchup=True)
    ctrl.observe(is_live=True)
    assert ctrl.observe(is_live=False) == SyncState.LIVE
    assert ctrl.should_deliver()


# ── Test 29: Starting live ────────────────────────────────────────


def test_first_block_live_skips_catchup():
    ctrl = SyncModeController(suppress_during_catchup=True)
    assert ctrl.observe(is_live=True) == SyncState.LIVE
