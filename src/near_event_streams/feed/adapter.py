"""Chain feed adapter - turns a raw block source into an ordered, checked block stream."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import aclosing
from typing import AsyncIterator

from near_event_streams.errors import FeedError, FeedExhausted, ReorgDetected
from near_event_streams.feed.messages import parse_streamer_message
from near_event_streams.interfaces.source import BlockSource
from near_event_streams.models.chain import BlockHeader, ChunkExecutionOutcome, FeedBlock

log = logging.getLogger(__name__)


class ChainFeed:
    """Ordered block stream over a BlockSource.

    Guarantees:
    1. Heights strictly increase; a block must link to the previous one via
       prev_hash (heights may jump only when prev_hash links).
    2. A re-served block identical to one already emitted is dropped.
    3. A different hash at an emitted height, or a parent that is an older
       emitted block, raises ReorgDetected with the common ancestor. The
       caller rolls the cursor back, calls rewind() and restarts the stream.
    4. Source failures restart the source from the next expected height with
       exponential backoff; past the retry ceiling FeedExhausted is raised.
    """

    def __init__(
        self,
        source: BlockSource,
        retries: int = 5,
        base_delay: float = 0.5,
        max_delay: float = 30.0,
        window: int = 256,
    ) -> None:
        self._source = source
        self._retries = retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._window = window
        self._seen: OrderedDict[int, str] = OrderedDict()  # height -> hash, emitted blocks

    @property
    def last_emitted(self) -> tuple[int, str] | None:
        if not self._seen:
            return None
        return next(reversed(self._seen.items()))

    def seed(self, height: int, block_hash: str) -> None:
        """Anchor continuity checks on the last committed block."""
        self._seen.clear()
        self._seen[height] = block_hash

    def rewind(self, height: int, block_hash: str) -> None:
        """Forget emitted blocks above a reorg's common ancestor."""
        for h in [h for h in self._seen if h > height]:
            del self._seen[h]
        self._seen[height] = block_hash

    async def stream(self, start_height: int) -> AsyncIterator[FeedBlock]:
        """Yield checked blocks from start_height. Ends when the source ends."""
        next_height = start_height
        failures = 0

        while True:
            try:
                async with aclosing(self._source.stream(next_height)) as messages:
                    async for message in messages:
                        header, outcomes = parse_streamer_message(message)
                        block = self._accept(header, outcomes)
                        if block is None:
                            continue
                        failures = 0
                        next_height = header.height + 1
                        yield block
                return

            except FeedExhausted:
                raise
            except (FeedError, OSError) as exc:
                failures += 1
                await self._backoff(failures, exc, f"height {next_height}")

    async def tracked_shards(self) -> frozenset[int] | None:
        """Shards the node reports tracking, retrying transient failures."""
        failures = 0
        while True:
            try:
                return await self._source.tracked_shards()
            except (FeedError, OSError) as exc:
                failures += 1
                await self._backoff(failures, exc, "status query")

    async def _backoff(self, failures: int, exc: Exception, where: str) -> None:
        if failures >= self._retries:
            log.error("Feed failed %d times, giving up: %s", failures, exc)
            raise FeedExhausted(f"feed failed {failures} times at {where}: {exc}") from exc
        delay = min(self._base_delay * (2 ** (failures - 1)), self._max_delay)
        log.warning(
            "Feed error at %s (attempt %d/%d), retrying in %.1fs: %s",
            where, failures, self._retries, delay, exc,
        )
        await asyncio.sleep(delay)

    # ── Continuity checks ──────────────────────────────────

    def _accept(
        self, header: BlockHeader, outcomes: list[ChunkExecutionOutcome],
    ) -> FeedBlock | None:
        seen_hash = self._seen.get(header.height)
        if seen_hash is not None:
            if seen_hash == header.hash:
                log.debug("Dropping duplicate block %d", header.height)
                return None
            raise self._reorg(header)

        last = self.last_emitted
        if last is not None:
            last_height, last_hash = last
            if header.height <= last_height:
                # Below the newest block but not retained: treat as a fork
                raise self._reorg(header)
            if header.prev_hash != last_hash:
                if header.height == last_height + 1 or header.prev_hash in self._seen.values():
                    raise self._reorg(header)
                raise FeedError(
                    f"gap before block {header.height}: prev_hash {header.prev_hash[:12]} "
                    f"does not link to block {last_height}"
                )

        self._seen[header.height] = header.hash
        while len(self._seen) > self._window:
            self._seen.popitem(last=False)

        return FeedBlock(
            header=header,
            outcomes=tuple(outcomes),
            historical=not self._source.is_live,
        )

    def _reorg(self, header: BlockHeader) -> ReorgDetected:
        """Locate the common ancestor for a block that forks the emitted chain.

        If the new block's parent is retained it is the ancestor. Otherwise the
        parent was replaced too, so step back below it; a further mismatch on
        restart walks back one more block.
        """
        for height, block_hash in reversed(self._seen.items()):
            if height < header.height and block_hash == header.prev_hash:
                log.warning(
                    "Reorg at height %d: new hash %s, ancestor %d",
                    header.height, header.hash[:12], height,
                )
                return ReorgDetected(header.height, height, block_hash)

        last_height = self.last_emitted[0] if self._seen else header.height
        bound = min(header.height - 1, last_height)
        for height, block_hash in reversed(self._seen.items()):
            if height < bound:
                log.warning(
                    "Reorg at height %d: parent %s not retained, stepping back to %d",
                    header.height, header.prev_hash[:12], height,
                )
                return ReorgDetected(header.height, height, block_hash)

        raise FeedExhausted(
            f"reorg at height {header.height} is deeper than the retained window"
        )
