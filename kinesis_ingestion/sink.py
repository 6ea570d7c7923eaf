"""
Capture Sink

Forwards mapped events to a PostHog-compatible /capture/ endpoint.
Delivery is best-effort and not transactional with checkpointing.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Protocol
import logging

import httpx

from .clock import LogicalClock
from .errors import CaptureError

logger = logging.getLogger(__name__)

DEFAULT_DISTINCT_ID = "kinesis-ingestion"


class CaptureSink(Protocol):
    """Receives transformed events."""

    async def capture(self, event: Any, properties: Dict[str, str]) -> None:
        ...


class PostHogCaptureSink:
    """
    Async HTTP client for the capture endpoint.

    One httpx.AsyncClient is reused for the whole process; call close() on
    shutdown.
    """

    def __init__(
        self,
        host: str,
        api_key: str,
        distinct_id: str = DEFAULT_DISTINCT_ID,
        timeout: float = 10.0,
        user_agent: str = "KinesisIngestion/1.0",
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[LogicalClock] = None
    ):
        self._capture_url = f"{host.rstrip('/')}/capture/"
        self._api_key = api_key
        self._distinct_id = distinct_id
        self._clock = clock or LogicalClock.live()
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={'User-Agent': user_agent}
        )

    def build_payload(self, event: Any, properties: Dict[str, str]) -> Dict[str, Any]:
        """Request body for a single event."""
        return {
            'api_key': self._api_key,
            'event': event,
            'distinct_id': self._distinct_id,
            'properties': dict(properties),
            'timestamp': self._clock.now().isoformat(),
        }

    async def capture(self, event: Any, properties: Dict[str, str]) -> None:
        """POST one event. Raises CaptureError on transport or HTTP failure."""
        try:
            response = await self._client.post(
                self._capture_url,
                json=self.build_payload(event, properties)
            )
        except httpx.TimeoutException as e:
            raise CaptureError(str(event), f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise CaptureError(str(event), f"network error: {e}") from e

        if response.status_code >= 400:
            raise CaptureError(
                str(event),
                f"HTTP {response.status_code}",
                http_status=response.status_code
            )
        logger.debug(f"Captured event {event!r}")

    async def close(self) -> None:
        await self._client.aclose()
