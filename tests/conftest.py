"""Shared fixtures for near_event_streams tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from near_event_streams.daemon import IndexerDaemon
from near_event_streams.models.config import (
    IndexerConfig,
    ResumeMode,
    RetryConfig,
    SinkConfig,
)
from near_event_streams.storage.sqlite import SQLiteCursorStore

from tests.mocks import MockSink, MockSource

GENESIS_HEIGHT = 100


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add pipeline info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Chain"] = "NEAR (synthetic streamer messages)"
    meta["Genesis Height"] = str(GENESIS_HEIGHT)


def pytest_html_results_summary(prefix, summary, postfix):
    """Note in the report summary that no live node or sink was used."""
    prefix.append(
        '<div style="margin:8px 0;padding:10px;background:#f8f9fa;border:1px solid #dee2e6;'
        'border-radius:4px;font-family:monospace;font-size:13px;">'
        "<strong>Feed and sink are mocked; cursor stores are real SQLite</strong>"
        "</div>"
    )


def make_test_config(**overrides) -> IndexerConfig:
    """Build an IndexerConfig suitable for testing."""
    defaults = dict(
        sync_mode=ResumeMode.FROM_GENESIS,
        genesis_height=GENESIS_HEIGHT,
        suppress_during_catchup=False,
        tracked_shards=[0],
        queue_capacity=4,
        stats_interval=60,
        db_path=":memory:",
        sink=SinkConfig(kind="jsonl", path="/tmp/near_event_streams_test/events.jsonl"),
        delivery=RetryConfig(retries=3, base_delay=0.01, max_delay=0.05),
    )
    defaults.update(overrides)
    return IndexerConfig(**defaults)


@pytest.fixture
def test_config():
    """Default IndexerConfig for tests."""
    return make_test_config()


@pytest.fixture
def db_path(tmp_path):
    """File-backed database path, for tests that restart the indexer."""
    return str(tmp_path / "state.db")


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteCursorStore."""
    s = SQLiteCursorStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def mock_sink():
    return MockSink()


def make_daemon(
    source: MockSource,
    sink: MockSink | None = None,
    store: SQLiteCursorStore | None = None,
    **overrides,
) -> IndexerDaemon:
    """Fully wired IndexerDaemon with a mocked feed and sink."""
    cfg = make_test_config(**overrides)
    return IndexerDaemon(
        cfg,
        source=source,
        sink=sink or MockSink(),
        store=store or SQLiteCursorStore(cfg.db_path),
    )
