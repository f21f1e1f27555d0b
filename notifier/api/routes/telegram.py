"""Telegram webhook.

Telegram posts one JSON ``Update`` per call. Only text messages are
handled; everything else is acknowledged so Telegram does not retry it.
Per-chat command rate limits are applied by the command service.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Body, Depends

from notifier.core.auth import verify_webhook_secret
from notifier.core.container import ServiceContainer, get_container
from notifier.schemas.status import WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Telegram"])


def _extract_message(update: Dict[str, Any]) -> tuple[str, str] | None:
    message = update.get("message") or update.get("edited_message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat") or {}
    text = message.get("text")
    if chat.get("id") is None or not isinstance(text, str):
        return None
    return str(chat["id"]), text


@router.post(
    "/telegram/webhook",
    response_model=WebhookResponse,
    dependencies=[Depends(verify_webhook_secret)],
)
async def telegram_webhook(
    update: Annotated[Dict[str, Any], Body(...)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> WebhookResponse:
    """Dispatch a chat message to the bot command layer."""

    extracted = _extract_message(update)
    if extracted is None:
        logger.debug("telegram.update_ignored", extra={"update_id": update.get("update_id")})
        return WebhookResponse(ok=True, handled=False)

    chat_id, text = extracted
    replies = await container.commands.handle_message(chat_id, text)
    return WebhookResponse(ok=True, handled=True, replies=len(replies))
