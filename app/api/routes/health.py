from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness probe for load balancers and monitoring.

    Exempt from rate limiting by default so probes never get throttled.
    Reports how many client keys the limiter is currently tracking.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    return {
        "status": "ok",
        "rate_limit": {
            "enabled": limiter is not None,
            "tracked_clients": len(limiter) if limiter is not None else 0,
        },
    }
