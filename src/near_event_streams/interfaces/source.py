"""BlockSource protocol - the external indexer feed the adapter wraps."""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol


class BlockSource(Protocol):
    """Supplies raw streamer messages from a chain node's indexer.

    The source owns transport and polling. It is trusted for block content
    but not for delivery timing or liveness.
    """

    @property
    def is_live(self) -> bool:
        """True once the source reports it has reached the chain head."""
        ...

    @property
    def latest_height(self) -> int | None:
        """Chain head as last reported by the source, if known."""
        ...

    def stream(self, start_height: int) -> AsyncIterator[dict[str, Any]]:
        """Yield streamer messages for heights >= start_height, in order."""
        ...

    async def tracked_shards(self) -> frozenset[int] | None:
        """Shards the node tracks. None if the source does not constrain them."""
        ...

    async def close(self) -> None:
        ...
