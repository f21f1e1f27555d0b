"""Unit tests for admin API key and webhook secret authentication."""

from unittest.mock import patch

import pytest
from fastapi import HTTPException

from notifier.core.auth import parse_api_keys, validate_api_key, verify_api_key, verify_webhook_secret
from notifier.core.errors import AuthenticationAppError


class TestParseAPIKeys:
    """API key list parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("admin-key", {"admin-key"}),
            ("k1,k2,k3", {"k1", "k2", "k3"}),
            ("k1 , k2  ,  k3", {"k1", "k2", "k3"}),
            ("k1,k2,k1", {"k1", "k2"}),
            (None, set()),
            ("", set()),
            ("   ,  ,  ", set()),
        ],
    )
    def test_parse(self, raw, expected) -> None:
        assert parse_api_keys(raw) == expected


class TestValidateAPIKey:
    """Core key validation."""

    @patch("notifier.core.auth.settings")
    def test_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        validate_api_key("anything")
        validate_api_key("")

    @pytest.mark.parametrize("configured", [None, "", " , "])
    @patch("notifier.core.auth.settings")
    def test_raises_when_no_keys_configured(self, mock_settings, configured) -> None:
        """Auth required but nothing to compare against is a configuration error."""
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = configured

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"

    @patch("notifier.core.auth.settings")
    def test_accepts_any_configured_key(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = " ops-key , dashboard-key "

        validate_api_key("ops-key")
        validate_api_key("dashboard-key")

    @pytest.mark.parametrize("provided", ["wrong", "", " ops-key "])
    @patch("notifier.core.auth.settings")
    def test_rejects_unknown_key(self, mock_settings, provided) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-key"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key(provided)

        assert exc_info.value.code == "invalid_api_key"


class TestVerifyAPIKeyDependency:
    """FastAPI dependency guarding admin routes."""

    @pytest.mark.asyncio
    @patch("notifier.core.auth.settings")
    async def test_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        await verify_api_key(x_api_key=None)

    @pytest.mark.asyncio
    @patch("notifier.core.auth.settings")
    async def test_missing_header_is_403(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-key"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key=None)

        assert exc_info.value.status_code == 403
        assert "Missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("notifier.core.auth.settings")
    async def test_invalid_key_is_403(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-key"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="wrong-key")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Invalid or missing API key"

    @pytest.mark.asyncio
    @patch("notifier.core.auth.settings")
    async def test_unconfigured_keys_is_403(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = None

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="ops-key")

        assert exc_info.value.status_code == 403
        assert "no valid keys are configured" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("notifier.core.auth.settings")
    async def test_valid_key_passes(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-key"

        await verify_api_key(x_api_key="ops-key")


class TestVerifyWebhookSecret:
    """Telegram secret token header check."""

    @pytest.mark.asyncio
    @patch("notifier.core.auth.settings")
    async def test_no_secret_configured_accepts_everything(self, mock_settings) -> None:
        mock_settings.telegram.webhook_secret = None

        await verify_webhook_secret(x_telegram_bot_api_secret_token=None)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provided", [None, "", "guess"])
    @patch("notifier.core.auth.settings")
    async def test_missing_or_wrong_secret_raises(self, mock_settings, provided) -> None:
        mock_settings.telegram.webhook_secret = "s3cret"

        with pytest.raises(AuthenticationAppError) as exc_info:
            await verify_webhook_secret(x_telegram_bot_api_secret_token=provided)

        assert exc_info.value.code == "invalid_webhook_secret"

    @pytest.mark.asyncio
    @patch("notifier.core.auth.settings")
    async def test_matching_secret_passes(self, mock_settings) -> None:
        mock_settings.telegram.webhook_secret = "s3cret"

        await verify_webhook_secret(x_telegram_bot_api_secret_token="s3cret")
