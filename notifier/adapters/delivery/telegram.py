"""Telegram Bot API delivery channel."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from notifier.adapters.delivery.base import AbstractDeliveryChannel
from notifier.core.errors import UpstreamUnavailable
from notifier.core.logging import hash_identifier

logger = logging.getLogger(__name__)


class TelegramDeliveryChannel(AbstractDeliveryChannel):
    """Sends messages through ``sendMessage`` of the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://api.telegram.org",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not bot_token:
            raise ValueError("bot_token is required")
        self._endpoint = f"{api_base_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def send_text(self, key: str, text: str, *, markdown: bool = False) -> bool:
        body: dict[str, Any] = {"chat_id": key, "text": text}
        if markdown:
            body["parse_mode"] = "Markdown"

        try:
            response = await self.client.post(self._endpoint, json=body)
        except httpx.HTTPError as exc:
            logger.warning(
                "delivery.transport_error",
                extra={"channel": "telegram", "key_hash": hash_identifier(key), "error_type": type(exc).__name__},
            )
            raise UpstreamUnavailable(
                code="delivery_unavailable",
                message="Telegram Bot API could not be reached",
                details={"upstream": "telegram"},
            ) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_success and data.get("ok"):
            return True

        logger.warning(
            "delivery.rejected",
            extra={
                "channel": "telegram",
                "key_hash": hash_identifier(key),
                "status_code": response.status_code,
                "description": data.get("description"),
            },
        )
        return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
