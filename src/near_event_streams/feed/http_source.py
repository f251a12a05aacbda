"""HTTP streamer source - polls a node's streamer bridge for finalized blocks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

import httpx

from near_event_streams.errors import FeedError
from near_event_streams.feed.messages import parse_header

log = logging.getLogger(__name__)

# Refresh the head height at least this often while replaying history
_STATUS_EVERY_BLOCKS = 100


class HttpStreamerSource:
    """Pulls streamer messages from the node's HTTP bridge.

    Endpoints:
    - GET /status: {"latest_height": int, "syncing": bool, "tracked_shards": [int]}
    - GET /blocks/next?after=H: the first block above H (200), or 204 when
      nothing newer is finalized yet. Heights that produced no block are
      skipped by the bridge; continuity is carried by prev_hash.
    """

    def __init__(
        self,
        url: str,
        poll_interval: float = 1.0,
        request_timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._poll_interval = poll_interval
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout, connect=5),
        )
        self._latest_height: int | None = None
        self._syncing = True
        self._live = False
        self._shards: frozenset[int] | None = None

    @property
    def is_live(self) -> bool:
        return self._live

    @property
    def latest_height(self) -> int | None:
        return self._latest_height

    async def _get(self, path: str, **params: Any) -> httpx.Response:
        try:
            resp = await self._client.get(f"{self._base_url}{path}", params=params or None)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FeedError(f"streamer HTTP {exc.response.status_code} on {path}") from exc
        except httpx.HTTPError as exc:
            raise FeedError(f"streamer unreachable on {path}: {exc}") from exc
        return resp

    async def refresh_status(self) -> None:
        resp = await self._get("/status")
        try:
            data = resp.json()
            self._latest_height = int(data["latest_height"])
            self._syncing = bool(data.get("syncing", False))
            shards = data.get("tracked_shards")
            self._shards = frozenset(int(s) for s in shards) if shards is not None else None
        except (ValueError, KeyError, TypeError) as exc:
            raise FeedError(f"malformed streamer status: {exc}") from exc

    async def tracked_shards(self) -> frozenset[int] | None:
        await self.refresh_status()
        return self._shards

    async def stream(self, start_height: int) -> AsyncIterator[dict[str, Any]]:
        """Yield streamer messages from start_height onwards, forever."""
        after = start_height - 1
        await self.refresh_status()
        since_status = 0

        while True:
            resp = await self._get("/blocks/next", after=after)
            if resp.status_code == 204:
                # Caught up with the finalized head
                await self.refresh_status()
                if not self._syncing and not self._live:
                    log.info("Streamer reached chain head at %s", self._latest_height)
                    self._live = True
                await asyncio.sleep(self._poll_interval)
                continue

            try:
                message = resp.json()
            except ValueError as exc:
                raise FeedError(f"malformed block after {after}: {exc}") from exc
            header = parse_header(message)
            if header.height <= after:
                raise FeedError(
                    f"streamer returned height {header.height} for after={after}"
                )
            after = header.height

            since_status += 1
            if since_status >= _STATUS_EVERY_BLOCKS:
                await self.refresh_status()
                since_status = 0
            if (
                not self._live
                and not self._syncing
                and self._latest_height is not None
                and after >= self._latest_height
            ):
                log.info("Streamer reached chain head at %d", after)
                self._live = True

            yield message

    async def close(self) -> None:
        await self._client.aclose()
