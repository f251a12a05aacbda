"""JSON-lines sink - appends events to a local file, fsynced before the ack."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Sequence

from near_event_streams.models.events import Event


class JsonlSink:
    """Appends one canonical JSON event per line.

    The write and fsync run in a worker thread so a slow disk does not stall
    the event loop. Sends are serialized, so each block's lines stay contiguous.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    async def send(self, events: Sequence[Event], height: int, block_hash: str) -> None:
        lines = "".join(e.to_json() + "\n" for e in events)
        async with self._lock:
            await asyncio.to_thread(self._append, lines)

    def _append(self, lines: str) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(lines)
            f.flush()
            os.fsync(f.fileno())

    async def close(self) -> None:
        return None
