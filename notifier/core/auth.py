"""Admin API key authentication.

Admin routes (schedule management, limiter stats) are protected by an
``X-API-Key`` header validated against ``APP_API_KEYS``. The Telegram webhook
has its own shared secret, checked by ``verify_webhook_secret``.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from notifier.core.config import settings
from notifier.core.errors import AuthenticationAppError
from notifier.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str) -> None:
    """Check ``provided_key`` against the configured admin keys.

    Raises:
        AuthenticationAppError: If no keys are configured while auth is
            required, or if the key is unknown.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)
    if not valid_keys:
        logger.error("auth.keys_not_configured")
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if not any(hmac.compare_digest(provided_key, key) for key in valid_keys):
        logger.warning(
            "auth.invalid_key",
            extra={"api_key_hash": hash_identifier(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding admin routes.

    Raises:
        HTTPException: 403 Forbidden if the key is missing or invalid.
    """
    if not settings.app.api_key_required:
        return

    if not x_api_key:
        logger.warning("auth.missing_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug("auth.success", extra={"api_key_hash": hash_identifier(x_api_key)})


async def verify_webhook_secret(
    x_telegram_bot_api_secret_token: Annotated[
        str | None, Header(alias="X-Telegram-Bot-Api-Secret-Token")
    ] = None,
) -> None:
    """Reject webhook calls whose secret token does not match the configured one.

    No check is made when ``TELEGRAM_WEBHOOK_SECRET`` is unset.

    Raises:
        AuthenticationAppError: On a missing or wrong secret token.
    """
    expected = settings.telegram.webhook_secret
    if not expected:
        return
    if not x_telegram_bot_api_secret_token or not hmac.compare_digest(
        x_telegram_bot_api_secret_token, expected
    ):
        logger.warning("auth.webhook_secret_mismatch")
        raise AuthenticationAppError(
            code="invalid_webhook_secret",
            message="Webhook secret token is missing or invalid",
        )
