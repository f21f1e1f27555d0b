"""Pydantic schemas for schedule management endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from notifier.scheduler.models import HandlerResult, JobRecord


class ScheduleRequest(BaseModel):
    """Body of ``PUT /v1/subscribers/{key}/schedule``.

    The range is enforced by the scheduler so that out-of-range values get
    the same 400 error (with the valid range) as everywhere else.
    """

    interval_minutes: int = Field(
        ...,
        description="Minutes between two deliveries (1-1440).",
        examples=[5],
    )


class JobResponse(BaseModel):
    """Current schedule of one subscriber."""

    id: str = Field(..., description="Identity of this schedule; changes on every reschedule.")
    key: str = Field(..., description="Subscriber key (Telegram chat id).")
    handler_name: str
    interval_minutes: int
    next_run_at: datetime = Field(..., description="Next due time (UTC).")
    last_run_at: datetime | None = Field(
        default=None, description="Time of the last successful delivery (UTC)."
    )
    fail_count: int = Field(..., description="Consecutive failures since the last success.")
    active: bool

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobResponse":
        return cls(
            id=record.id,
            key=record.key,
            handler_name=record.handler_name,
            interval_minutes=record.interval_minutes,
            next_run_at=record.next_run_at,
            last_run_at=record.last_run_at,
            fail_count=record.fail_count,
            active=record.active,
        )


class JobListResponse(BaseModel):
    jobs: list[JobResponse] = Field(default_factory=list)
    total: int = 0


class CancelResponse(BaseModel):
    key: str
    cancelled: bool = Field(..., description="False when there was nothing to cancel.")


class RunResponse(BaseModel):
    key: str
    result: HandlerResult
