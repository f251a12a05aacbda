"""Structured event models extracted from receipt logs."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class Event:
    """A NEP-297 style event emitted by a contract.

    Identity key is (receipt_id, log_index); consumers dedupe on it since
    delivery is at-least-once.
    """

    standard: str
    version: str
    event_type: str
    data: Any
    block_height: int
    block_timestamp: int
    shard_id: int
    receipt_id: str
    contract_account_id: str
    log_index: int

    def key(self) -> str:
        return f"{self.receipt_id}:{self.log_index}"

    def topic(self, prefix: str) -> str:
        return f"{prefix}_{self.standard}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        """Canonical serialization: identical events give identical bytes."""
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False,
        )


@dataclass(frozen=True)
class ParsedEvent:
    """A log line that matched the EVENT_JSON convention."""

    event: Event


@dataclass(frozen=True)
class SkippedMalformed:
    """A log line carrying the EVENT_JSON prefix that could not be parsed."""

    receipt_id: str
    log_index: int
    reason: str
    line: str


ExtractionResult = Union[ParsedEvent, SkippedMalformed]


@dataclass
class ExtractionReport:
    """Outcome of extracting a whole block."""

    block_height: int
    events: list[Event] = field(default_factory=list)
    skipped: list[SkippedMalformed] = field(default_factory=list)
    non_event_lines: int = 0

    @property
    def malformed_count(self) -> int:
        return len(self.skipped)
