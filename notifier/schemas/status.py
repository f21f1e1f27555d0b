"""Pydantic schemas for health, status and limiter endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field("ok", description="Always 'ok' when the API answers.")
    timestamp: datetime
    active_schedules: int = Field(..., description="Number of active recurring jobs.")


class StatusResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime
    runner_state: str = Field(..., description="idle, polling, dispatching or stopped.")
    runner_running: bool
    in_flight: int = Field(..., description="Handler invocations currently executing.")
    active_schedules: int
    rate_limiters: int = Field(..., description="Number of registered limiters.")


class RateLimitStatsResponse(BaseModel):
    limiters: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-limiter usage (no identifiers exposed).",
    )


class WebhookResponse(BaseModel):
    ok: bool = True
    handled: bool = Field(..., description="False for updates without a text message.")
    replies: int = 0
