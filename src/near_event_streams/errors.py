"""Exception hierarchy for the event stream pipeline."""

from __future__ import annotations


class StreamError(Exception):
    """Base class for pipeline errors."""


class FatalError(StreamError):
    """A condition that stops the process; the committed cursor stays intact."""


class ConfigError(FatalError):
    """Invalid startup configuration (missing resume height, shard mismatch)."""


class CursorCorruption(FatalError):
    """The persisted cursor cannot be read. Restart with a from-height override."""


class CursorError(StreamError):
    """Illegal cursor mutation, e.g. a commit that would move the cursor backwards."""


class FeedError(StreamError):
    """Feed disconnect or malformed block. Retried by the feed adapter."""


class FeedExhausted(FeedError, FatalError):
    """The feed kept failing past its retry ceiling."""


class DeliveryError(StreamError):
    """Sink unreachable, rejected the batch, or timed out."""


class DeliveryExhausted(DeliveryError, FatalError):
    """Delivery kept failing past its retry ceiling; the block is not skipped."""

    def __init__(self, height: int, attempts: int, last_error: str) -> None:
        super().__init__(
            f"block {height} undeliverable after {attempts} attempts: {last_error}"
        )
        self.height = height
        self.attempts = attempts
        self.last_error = last_error


class ReorgDetected(StreamError):
    """A previously seen height now carries a different block."""

    def __init__(self, height: int, ancestor_height: int, ancestor_hash: str) -> None:
        super().__init__(
            f"reorg at height {height}, common ancestor {ancestor_height}"
        )
        self.height = height
        self.ancestor_height = ancestor_height
        self.ancestor_hash = ancestor_hash
