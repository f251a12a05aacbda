"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from near_event_streams.errors import ConfigError
from near_event_streams.models.config import (
    FeedConfig,
    IndexerConfig,
    ResumeMode,
    RetryConfig,
    SinkConfig,
)


def _resume_mode(value: str) -> ResumeMode:
    try:
        return ResumeMode(value)
    except ValueError:
        choices = ", ".join(m.value for m in ResumeMode)
        raise ConfigError(f"unknown sync mode {value!r} (expected one of: {choices})") from None


def _int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "NES_",
) -> IndexerConfig:
    """Load indexer configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (NES_SYNC_MODE, NES_FEED_URL, etc.)
        2. TOML config file
        3. Defaults from IndexerConfig

    A missing file falls back to defaults; an unreadable one is a ConfigError.
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            try:
                with open(p, "rb") as f:
                    raw = tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"invalid config file {p}: {exc}") from exc

    cfg = IndexerConfig()

    # ── Indexer section ────────────────────────────────────
    indexer = raw.get("indexer", {})
    if v := indexer.get("sync_mode"):
        cfg.sync_mode = _resume_mode(str(v))
    if "start_height" in indexer:
        cfg.start_height = _int(indexer["start_height"], "start_height")
    if "genesis_height" in indexer:
        cfg.genesis_height = _int(indexer["genesis_height"], "genesis_height")
    if "suppress_during_catchup" in indexer:
        cfg.suppress_during_catchup = bool(indexer["suppress_during_catchup"])
    if "tracked_shards" in indexer:
        cfg.tracked_shards = [_int(s, "tracked_shards") for s in indexer["tracked_shards"]]
    if v := indexer.get("queue_capacity"):
        cfg.queue_capacity = _int(v, "queue_capacity")
    if v := indexer.get("stats_interval"):
        cfg.stats_interval = _int(v, "stats_interval")
    if v := indexer.get("log_level"):
        cfg.log_level = str(v)

    # ── Feed section ───────────────────────────────────────
    feed = raw.get("feed", {})
    cfg.feed = FeedConfig(
        kind=feed.get("kind", "http"),
        url=feed.get("url", "http://127.0.0.1:3030"),
        path=feed.get("path", ""),
        poll_interval=float(feed.get("poll_interval", 1.0)),
        request_timeout=float(feed.get("request_timeout", 10.0)),
        retries=_int(feed.get("retries", 5), "feed.retries"),
    )

    # ── Sink section ───────────────────────────────────────
    sink = raw.get("sink", {})
    cfg.sink = SinkConfig(
        kind=sink.get("kind", "http"),
        url=sink.get("url", ""),
        path=sink.get("path", "~/.near_event_streams/events.jsonl"),
        timeout=float(sink.get("timeout", 10.0)),
        topic_prefix=sink.get("topic_prefix", "near_events"),
        all_topic=sink.get("all_topic", "near_events_all"),
    )

    # ── Delivery section ───────────────────────────────────
    delivery = raw.get("delivery", {})
    cfg.delivery = RetryConfig(
        retries=_int(delivery.get("retries", 5), "delivery.retries"),
        base_delay=float(delivery.get("base_delay", 0.5)),
        max_delay=float(delivery.get("max_delay", 30.0)),
    )

    # ── Policy section ─────────────────────────────────────
    policy = raw.get("policy", {})
    if v := policy.get("whitelist_contract_ids"):
        cfg.whitelist_contract_ids = [str(c) for c in v]
    if v := policy.get("blacklist_contract_ids"):
        cfg.blacklist_contract_ids = [str(c) for c in v]

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Environment variable overrides (highest priority) ──
    if mode_env := os.environ.get(f"{env_prefix}SYNC_MODE"):
        cfg.sync_mode = _resume_mode(mode_env)
    if height := os.environ.get(f"{env_prefix}START_HEIGHT"):
        cfg.start_height = _int(height, f"{env_prefix}START_HEIGHT")
    if url := os.environ.get(f"{env_prefix}FEED_URL"):
        cfg.feed.url = url
    if url := os.environ.get(f"{env_prefix}SINK_URL"):
        cfg.sink.url = url
    if db := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db

    # Expand ~ in paths
    cfg.db_path = str(Path(cfg.db_path).expanduser())
    cfg.sink.path = str(Path(cfg.sink.path).expanduser())
    if cfg.feed.path:
        cfg.feed.path = str(Path(cfg.feed.path).expanduser())

    return cfg
