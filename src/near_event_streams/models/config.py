"""Configuration models for the indexer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

from near_event_streams.errors import ConfigError


class ResumeMode(str, Enum):
    """Where the pipeline starts on boot."""

    FROM_GENESIS = "from-genesis"
    FROM_INTERRUPTION = "from-interruption"  # last committed height + 1
    FROM_HEIGHT = "from-height"  # explicit override, needs start_height


@dataclass
class FeedConfig:
    """Upstream streamer source configuration."""

    kind: str = "http"  # "http" or "file"
    url: str = "http://127.0.0.1:3030"
    path: str = ""  # JSON-lines dump for kind="file"
    poll_interval: float = 1.0  # seconds between polls when no block is ready
    request_timeout: float = 10.0
    retries: int = 5  # consecutive source failures before giving up


@dataclass
class SinkConfig:
    """Outbound event sink configuration."""

    kind: str = "http"  # "http" or "jsonl"
    url: str = ""
    path: str = "~/.near_event_streams/events.jsonl"
    timeout: float = 10.0  # seconds per send attempt
    topic_prefix: str = "near_events"
    all_topic: str = "near_events_all"  # aggregate topic on every event; "" disables


@dataclass
class RetryConfig:
    """Bounded exponential backoff for sink delivery."""

    retries: int = 5
    base_delay: float = 0.5  # seconds
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


@dataclass
class IndexerConfig:
    """Complete indexer configuration, read once at startup."""

    # Indexer
    sync_mode: ResumeMode = ResumeMode.FROM_INTERRUPTION
    start_height: int | None = None
    genesis_height: int = 0
    suppress_during_catchup: bool = True
    tracked_shards: list[int] = field(default_factory=lambda: [0])
    queue_capacity: int = 16  # blocks buffered between feed and publisher
    stats_interval: int = 10  # seconds
    log_level: str = "info"

    # Policy
    whitelist_contract_ids: list[str] = field(default_factory=list)
    blacklist_contract_ids: list[str] = field(default_factory=list)

    # Storage
    db_path: str = "~/.near_event_streams/state.db"

    feed: FeedConfig = field(default_factory=FeedConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    delivery: RetryConfig = field(default_factory=RetryConfig)

    def validate(self) -> None:
        """Raise ConfigError for settings the pipeline cannot start with."""
        if self.sync_mode == ResumeMode.FROM_HEIGHT and self.start_height is None:
            raise ConfigError("sync mode 'from-height' requires start_height")
        if self.start_height is not None and self.start_height < 0:
            raise ConfigError(f"start_height must be >= 0, got {self.start_height}")
        if not self.tracked_shards:
            raise ConfigError("tracked_shards must list at least one shard")
        if self.queue_capacity < 1:
            raise ConfigError("queue_capacity must be >= 1")
        if self.feed.kind not in ("http", "file"):
            raise ConfigError(f"unknown feed kind: {self.feed.kind!r}")
        if self.feed.kind == "file" and not self.feed.path:
            raise ConfigError("feed kind 'file' requires feed.path")
        if self.sink.kind not in ("http", "jsonl"):
            raise ConfigError(f"unknown sink kind: {self.sink.kind!r}")
        if self.sink.kind == "http" and not self.sink.url:
            raise ConfigError("sink kind 'http' requires sink.url")
        if self.delivery.retries < 1 or self.feed.retries < 1:
            raise ConfigError("retry ceilings must be >= 1")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(
                f"unknown log_level {self.log_level!r} (expected one of: {', '.join(LOG_LEVELS)})"
            )
