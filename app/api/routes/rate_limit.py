from __future__ import annotations

from fastapi import APIRouter, Request

from app.adapters.rate_limit.base import RateLimitDecision
from app.schemas.rate_limit import RateLimitStatusResponse

router = APIRouter(tags=["Rate limit"])


@router.get("/rate-limit", response_model=RateLimitStatusResponse)
def rate_limit_status(request: Request) -> RateLimitStatusResponse:
    """Report the caller's quota.

    The request itself is counted, so ``remaining`` already reflects it.
    When rate limiting is disabled (or the path is exempt) only
    ``enabled: false`` is returned.
    """

    decision: RateLimitDecision | None = getattr(request.state, "rate_limit", None)
    if decision is None:
        return RateLimitStatusResponse(enabled=False)

    return RateLimitStatusResponse(
        allowed=decision.allowed,
        limit=decision.limit,
        remaining=decision.remaining,
        reset_time=decision.reset_time,
    )
