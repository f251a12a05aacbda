"""HTTP sink - POSTs each block's events to a webhook endpoint."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from near_event_streams.errors import DeliveryError
from near_event_streams.models.events import Event

log = logging.getLogger(__name__)


class HttpSink:
    """Delivers one JSON document per block.

    Body: {"block_height", "block_hash", "events": [...]}, where each event
    carries its idempotency "key" and per-standard routing "topic". When
    all_topic is set every event also names that aggregate topic. Any 2xx is
    an ack; everything else raises DeliveryError.
    """

    def __init__(
        self,
        url: str,
        topic_prefix: str = "near_events",
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        all_topic: str = "",
    ) -> None:
        self._url = url
        self._topic_prefix = topic_prefix
        self._all_topic = all_topic
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=5),
            headers=headers,
        )

    def _event(self, event: Event) -> dict[str, Any]:
        doc = {**event.to_dict(), "key": event.key(), "topic": event.topic(self._topic_prefix)}
        if self._all_topic:
            doc["all_topic"] = self._all_topic
        return doc

    def _payload(self, events: Sequence[Event], height: int, block_hash: str) -> dict[str, Any]:
        return {
            "block_height": height,
            "block_hash": block_hash,
            "events": [self._event(e) for e in events],
        }

    async def send(self, events: Sequence[Event], height: int, block_hash: str) -> None:
        try:
            resp = await self._client.post(
                self._url, json=self._payload(events, height, block_hash),
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"sink rejected block {height}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"sink unreachable for block {height}: {exc}") from exc
        log.debug("Sink acknowledged block %d", height)

    async def close(self) -> None:
        await self._client.aclose()
