"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme, marks admin operations as requiring
it and leaves public operations (health, status, webhook) open.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

PUBLIC_PATHS = ("/health", "/status", "/v1/telegram/webhook")

TAGS = [
    {"name": "Health", "description": "Liveness and scheduler status."},
    {"name": "Subscribers", "description": "Inspect and manage per-subscriber schedules."},
    {"name": "Rate limits", "description": "Usage of the named rate limiters."},
    {"name": "Telegram", "description": "Bot webhook receiving chat updates."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add the security scheme and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key (APP_API_KEYS).",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        known = {t.get("name") for t in tags}
        tags.extend(tag for tag in TAGS if tag["name"] not in known)

        for path, methods in schema.get("paths", {}).items():
            if path in PUBLIC_PATHS:
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
