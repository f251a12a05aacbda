"""EventSink protocol - the outbound consumer of extracted events."""

from __future__ import annotations

from typing import Protocol, Sequence

from near_event_streams.models.events import Event


class EventSink(Protocol):
    """Receives events block by block. Returning normally is the ack."""

    async def send(self, events: Sequence[Event], height: int, block_hash: str) -> None:
        """Deliver one block's events. Raise on any failure."""
        ...

    async def close(self) -> None:
        ...
