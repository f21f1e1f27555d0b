"""Joke API payload source."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from notifier.adapters.payload.base import AbstractPayloadSource, Payload
from notifier.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


def format_joke(joke: dict[str, Any]) -> str:
    """Render a joke as ``setup``, blank line, ``punchline``."""
    return f"{joke['setup']}\n\n{joke['punchline']}"


class JokeApiPayloadSource(AbstractPayloadSource):
    """Fetches a random joke from the official joke API.

    Uses a shared ``httpx.AsyncClient``; pass ``client`` to inject a
    preconfigured one (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = "https://official-joke-api.appspot.com",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def fetch_payload(self) -> Payload:
        url = f"{self.base_url}/random_joke"
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "payload.fetch_failed",
                extra={"upstream": "joke_api", "status_code": exc.response.status_code},
            )
            raise UpstreamUnavailable(
                code="payload_upstream_error",
                message="Failed to fetch joke from external API",
                details={"upstream": "joke_api", "http_status": exc.response.status_code},
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "payload.fetch_failed",
                extra={"upstream": "joke_api", "error_type": type(exc).__name__},
            )
            raise UpstreamUnavailable(
                code="payload_upstream_unavailable",
                message="Failed to fetch joke from external API",
                details={"upstream": "joke_api"},
            ) from exc

        if not isinstance(data, dict) or not data.get("setup") or not data.get("punchline"):
            raise UpstreamUnavailable(
                code="payload_invalid_response",
                message="Joke API returned an unexpected body",
                details={"upstream": "joke_api"},
            )

        return Payload(
            text=format_joke(data),
            source="joke_api",
            meta={"id": data.get("id"), "type": data.get("type")},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
