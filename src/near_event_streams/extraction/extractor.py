"""Event extractor - parses EVENT_JSON log lines into structured events.

A log line of the form ``EVENT_JSON:{"standard": ..., "version": ...,
"event": ..., "data": ...}`` becomes an Event. A prefixed line that is not
a valid event payload becomes a SkippedMalformed record; it is logged and
counted but never aborts the block. Extraction is a pure function of the
chunk content, so re-extracting a block yields identical events.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

from near_event_streams.models.chain import BlockHeader, ChunkExecutionOutcome
from near_event_streams.models.events import (
    Event,
    ExtractionReport,
    ExtractionResult,
    ParsedEvent,
    SkippedMalformed,
)

log = logging.getLogger(__name__)

EVENT_PREFIX = "EVENT_JSON:"

_REQUIRED_STR_FIELDS = ("standard", "version", "event")


def extract_log(
    line: str,
    log_index: int,
    outcome: ChunkExecutionOutcome,
    header: BlockHeader,
) -> ExtractionResult | None:
    """Classify one log line. Returns None for lines that are not events."""
    stripped = line.strip()
    if not stripped.startswith(EVENT_PREFIX):
        return None

    def _skip(reason: str) -> SkippedMalformed:
        return SkippedMalformed(
            receipt_id=outcome.receipt_id,
            log_index=log_index,
            reason=reason,
            line=line,
        )

    try:
        payload = json.loads(stripped[len(EVENT_PREFIX):].strip())
    except (ValueError, RecursionError) as exc:
        # RecursionError: deeply nested payloads overflow the decoder
        return _skip(f"invalid_json: {exc}")

    if not isinstance(payload, dict):
        return _skip("not_an_object")
    for name in _REQUIRED_STR_FIELDS:
        if not isinstance(payload.get(name), str):
            return _skip(f"missing_field: {name}")
    if "data" not in payload:
        return _skip("missing_field: data")

    return ParsedEvent(Event(
        standard=payload["standard"],
        version=payload["version"],
        event_type=payload["event"],
        data=payload["data"],
        block_height=header.height,
        block_timestamp=header.timestamp,
        shard_id=outcome.shard_id,
        receipt_id=outcome.receipt_id,
        contract_account_id=outcome.receiver_id,
        log_index=log_index,
    ))


class EventExtractor:
    """Extracts events from a block's tracked outcomes.

    Ordering: log order within a receipt, receipt order as attached to the
    chunk, chunks by ascending shard id.
    """

    def extract_outcome(
        self, outcome: ChunkExecutionOutcome, header: BlockHeader,
    ) -> list[ExtractionResult]:
        results: list[ExtractionResult] = []
        for log_index, line in enumerate(outcome.logs):
            result = extract_log(line, log_index, outcome, header)
            if result is not None:
                results.append(result)
        return results

    def extract_block(
        self, header: BlockHeader, outcomes: Iterable[ChunkExecutionOutcome],
    ) -> ExtractionReport:
        report = ExtractionReport(block_height=header.height)

        # sorted() is stable: receipts keep their chunk order within a shard
        for outcome in sorted(outcomes, key=lambda o: o.shard_id):
            matched = 0
            for result in self.extract_outcome(outcome, header):
                matched += 1
                if isinstance(result, ParsedEvent):
                    report.events.append(result.event)
                else:
                    report.skipped.append(result)
                    log.warning(
                        "Ignoring malformed event log in receipt %s (block %d, log %d): %s",
                        result.receipt_id, header.height, result.log_index, result.reason,
                    )
            report.non_event_lines += len(outcome.logs) - matched

        if report.events:
            log.debug(
                "Block %d: %d events, %d malformed",
                header.height, len(report.events), report.malformed_count,
            )
        return report
