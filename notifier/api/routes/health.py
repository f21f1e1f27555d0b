from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from notifier.adapters.rate_limit.policies import API_HEALTH, API_STATUS
from notifier.core.container import ServiceContainer, get_container
from notifier.core.rate_limit import rate_limited
from notifier.scheduler.models import utcnow
from notifier.schemas.status import HealthResponse, StatusResponse

router = APIRouter(tags=["Health"])

ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


@router.get(
    "/health",
    response_model=HealthResponse,
    dependencies=[Depends(rate_limited(API_HEALTH))],
)
async def health_check(container: ContainerDep) -> HealthResponse:
    """Liveness probe.

    Returns:
        HealthResponse: "ok", the server time and the number of active schedules.
    """

    return HealthResponse(
        status="ok",
        timestamp=utcnow(),
        active_schedules=await container.scheduler.active_count(),
    )


@router.get(
    "/status",
    response_model=StatusResponse,
    dependencies=[Depends(rate_limited(API_STATUS))],
)
async def scheduler_status(container: ContainerDep) -> StatusResponse:
    """Runner state and counters for dashboards."""

    runner = container.runner
    return StatusResponse(
        timestamp=utcnow(),
        runner_state=runner.state.value,
        runner_running=runner.running,
        in_flight=runner.in_flight,
        active_schedules=await container.scheduler.active_count(),
        rate_limiters=len(container.rate_limiters),
    )
