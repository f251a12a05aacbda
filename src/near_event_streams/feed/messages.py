"""Streamer message decoding - raw indexer JSON into chain models."""

from __future__ import annotations

import logging
from typing import Any

from near_event_streams.errors import FeedError
from near_event_streams.models.chain import BlockHeader, ChunkExecutionOutcome

log = logging.getLogger(__name__)


def _require(obj: Any, key: str, kind: type | tuple[type, ...], where: str) -> Any:
    if not isinstance(obj, dict) or key not in obj:
        raise FeedError(f"malformed block: missing {where}.{key}")
    value = obj[key]
    # bool is an int subclass; heights and shard ids must be real ints
    if isinstance(value, bool) or not isinstance(value, kind):
        raise FeedError(f"malformed block: {where}.{key} has type {type(value).__name__}")
    return value


def _status_label(status: Any) -> str:
    """Collapse the execution status variant to a short label.

    The indexer serializes it as {"SuccessValue": ...}, {"SuccessReceiptId": ...},
    {"Failure": ...} or the bare string "Unknown".
    """
    if isinstance(status, dict) and status:
        kind = next(iter(status))
        if kind.startswith("Success"):
            return "success"
        if kind == "Failure":
            return "failure"
    if isinstance(status, str):
        return status.lower()
    return "unknown"


def parse_header(message: dict[str, Any]) -> BlockHeader:
    block = _require(message, "block", dict, "message")
    header = _require(block, "header", dict, "block")
    return BlockHeader(
        height=_require(header, "height", int, "header"),
        hash=_require(header, "hash", str, "header"),
        prev_hash=_require(header, "prev_hash", str, "header"),
        timestamp=_require(header, "timestamp", int, "header"),
    )


def parse_outcomes(message: dict[str, Any]) -> list[ChunkExecutionOutcome]:
    """Flatten shards into outcomes, keeping receipt order within each shard."""
    shards = _require(message, "shards", list, "message")
    outcomes: list[ChunkExecutionOutcome] = []
    for shard in shards:
        shard_id = _require(shard, "shard_id", int, "shard")
        raw_outcomes = _require(shard, "receipt_execution_outcomes", list, "shard")
        for raw in raw_outcomes:
            receipt = _require(raw, "receipt", dict, "outcome")
            execution = _require(raw, "execution_outcome", dict, "outcome")
            outcome = _require(execution, "outcome", dict, "execution_outcome")
            logs = _require(outcome, "logs", list, "outcome")
            if not all(isinstance(line, str) for line in logs):
                raise FeedError("malformed block: non-string log line")
            outcomes.append(ChunkExecutionOutcome(
                shard_id=shard_id,
                receipt_id=_require(receipt, "receipt_id", str, "receipt"),
                logs=tuple(logs),
                status=_status_label(outcome.get("status")),
                receiver_id=str(receipt.get("receiver_id", "")),
            ))
    return outcomes


def parse_streamer_message(
    message: dict[str, Any],
) -> tuple[BlockHeader, list[ChunkExecutionOutcome]]:
    """Decode one streamer message. Raises FeedError if it is malformed."""
    header = parse_header(message)
    outcomes = parse_outcomes(message)
    log.debug("Decoded block %d (%d outcomes)", header.height, len(outcomes))
    return header, outcomes
