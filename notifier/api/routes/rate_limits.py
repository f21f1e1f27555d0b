from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from notifier.adapters.rate_limit.policies import API_ADMIN
from notifier.core.auth import verify_api_key
from notifier.core.container import ServiceContainer, get_container
from notifier.core.rate_limit import rate_limited
from notifier.schemas.status import RateLimitStatsResponse

router = APIRouter(
    tags=["Rate limits"],
    dependencies=[Depends(rate_limited(API_ADMIN)), Depends(verify_api_key)],
)


@router.get("/rate-limits", response_model=RateLimitStatsResponse)
async def rate_limit_stats(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> RateLimitStatsResponse:
    """Usage counters of every registered limiter."""
    return RateLimitStatsResponse(limiters=container.rate_limiters.stats())
