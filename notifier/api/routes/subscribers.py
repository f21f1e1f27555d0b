"""Admin endpoints managing one subscriber's recurring schedule.

All routes require ``X-API-Key`` and share the ``api:admin`` limiter. Errors
(invalid interval, unknown job) are raised as AppErrors and rendered by the
global exception handlers.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from notifier.adapters.rate_limit.policies import API_ADMIN
from notifier.core.auth import verify_api_key
from notifier.core.container import ServiceContainer, get_container
from notifier.core.rate_limit import rate_limited
from notifier.schemas.schedule import (
    CancelResponse,
    JobListResponse,
    JobResponse,
    RunResponse,
    ScheduleRequest,
)

router = APIRouter(
    tags=["Subscribers"],
    dependencies=[Depends(rate_limited(API_ADMIN)), Depends(verify_api_key)],
)

ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
SubscriberKey = Annotated[str, Path(min_length=1, max_length=128, description="Subscriber key (chat id).")]


@router.get("/subscribers", response_model=JobListResponse)
async def list_schedules(container: ContainerDep) -> JobListResponse:
    """List every stored schedule, soonest due first."""
    jobs = await container.scheduler.list_jobs()
    return JobListResponse(jobs=[JobResponse.from_record(j) for j in jobs], total=len(jobs))


@router.get("/subscribers/{key}/schedule", response_model=JobResponse)
async def get_schedule(key: SubscriberKey, container: ContainerDep) -> JobResponse:
    """Return the schedule of ``key``.

    Raises:
        NotFoundError: 404 when the subscriber has no schedule.
    """
    record = await container.scheduler.get(key)
    return JobResponse.from_record(record)


@router.put("/subscribers/{key}/schedule", response_model=JobResponse)
async def put_schedule(
    key: SubscriberKey,
    body: ScheduleRequest,
    container: ContainerDep,
) -> JobResponse:
    """Create or replace the schedule of ``key``.

    The first delivery is due ``interval_minutes`` from now. Replacing a
    schedule gives it a new id.

    Raises:
        InvalidIntervalError: 400 with the valid range when out of bounds.
    """
    record = await container.scheduler.schedule(key, body.interval_minutes)
    return JobResponse.from_record(record)


@router.delete("/subscribers/{key}/schedule", response_model=CancelResponse)
async def delete_schedule(key: SubscriberKey, container: ContainerDep) -> CancelResponse:
    """Cancel the schedule of ``key``; succeeds even when none exists."""
    cancelled = await container.scheduler.cancel(key)
    return CancelResponse(key=key, cancelled=cancelled)


@router.post("/subscribers/{key}/run", response_model=RunResponse)
async def run_now(key: SubscriberKey, container: ContainerDep) -> RunResponse:
    """Deliver to ``key`` immediately without moving its next due time."""
    result = await container.scheduler.run_now(key)
    return RunResponse(key=key, result=result)
