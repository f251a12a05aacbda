"""Outcome filters - drop execution outcomes the pipeline must not see."""

from __future__ import annotations

import logging
from typing import Iterable

from near_event_streams.models.chain import ChunkExecutionOutcome

log = logging.getLogger(__name__)


class ShardFilter:
    """Keeps only outcomes from tracked shards.

    Runs before extraction and cursor bookkeeping so nothing downstream ever
    reflects activity on shards we do not track.
    """

    def __init__(self, tracked_shards: Iterable[int]) -> None:
        self._tracked = frozenset(tracked_shards)

    @property
    def tracked_shards(self) -> frozenset[int]:
        return self._tracked

    def apply(
        self, outcomes: Iterable[ChunkExecutionOutcome],
    ) -> tuple[list[ChunkExecutionOutcome], int]:
        """Return (kept outcomes, number dropped)."""
        kept: list[ChunkExecutionOutcome] = []
        dropped = 0
        for outcome in outcomes:
            if outcome.shard_id in self._tracked:
                kept.append(outcome)
            else:
                dropped += 1
        if dropped:
            log.debug("Dropped %d outcomes from untracked shards", dropped)
        return kept, dropped


class ContractFilter:
    """Allow/deny lists on the contract account that emitted the logs.

    Checks:
    1. If the whitelist is non-empty, the receiver must be on it
    2. The receiver must not be on the blacklist
    """

    def __init__(
        self,
        whitelist: Iterable[str] = (),
        blacklist: Iterable[str] = (),
    ) -> None:
        self._whitelist = frozenset(whitelist)
        self._blacklist = frozenset(blacklist)

    @property
    def enabled(self) -> bool:
        return bool(self._whitelist or self._blacklist)

    def allows(self, contract_account_id: str) -> bool:
        if self._whitelist and contract_account_id not in self._whitelist:
            return False
        return contract_account_id not in self._blacklist

    def apply(self, outcomes: Iterable[ChunkExecutionOutcome]) -> list[ChunkExecutionOutcome]:
        if not self.enabled:
            return list(outcomes)
        return [o for o in outcomes if self.allows(o.receiver_id)]
