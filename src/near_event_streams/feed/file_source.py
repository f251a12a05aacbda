"""File streamer source - replays a JSON-lines dump of streamer messages."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator

from near_event_streams.errors import FeedError
from near_event_streams.feed.messages import parse_header

log = logging.getLogger(__name__)


class FileStreamerSource:
    """Replays streamer messages dumped one JSON object per line.

    Messages below the start height are skipped. The stream ends at end of
    file, at which point the source reports itself live.
    """

    def __init__(self, path: str | Path, tracked: frozenset[int] | None = None) -> None:
        self._path = Path(path).expanduser()
        self._tracked = tracked
        self._live = False
        self._latest_height: int | None = None

    @property
    def is_live(self) -> bool:
        return self._live

    @property
    def latest_height(self) -> int | None:
        return self._latest_height

    async def tracked_shards(self) -> frozenset[int] | None:
        return self._tracked

    async def stream(self, start_height: int) -> AsyncIterator[dict[str, Any]]:
        if not self._path.exists():
            raise FeedError(f"feed file not found: {self._path}")

        with open(self._path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except ValueError as exc:
                    raise FeedError(f"{self._path}:{lineno}: invalid JSON: {exc}") from exc
                height = parse_header(message).height
                self._latest_height = max(height, self._latest_height or height)
                if height < start_height:
                    continue
                yield message

        log.info("Reached end of %s", self._path)
        self._live = True

    async def close(self) -> None:
        return None
