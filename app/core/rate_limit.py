"""Rate limiting middleware for the HTTP layer.

This module wires a rate limiter adapter into the request pipeline.

Design goals:
- Explicit wiring: the limiter instance is passed in by the app factory,
  there is no module-level limiter.
- Swap-friendly: any AbstractRateLimiter backend can be used.
- Quota disclosure: every limited response carries X-RateLimit-* headers,
  whether the request was admitted or rejected.

Clients are identified by peer address, then the first X-Forwarded-For
entry, then a shared "unknown" key.
"""

from __future__ import annotations

import hashlib
import logging
import math
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import AbstractRateLimiter, ClientOrigin, RateLimitDecision
from app.core.exception_handlers import general_exception_handler

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]
HttpMiddleware = Callable[[Request, CallNext], Awaitable[Response]]


def parse_exempt_paths(paths_string: str | None) -> frozenset[str]:
    """Parse a comma-separated list of exempt paths.

    Examples:
        >>> sorted(parse_exempt_paths("/health, /docs"))
        ['/docs', '/health']
        >>> parse_exempt_paths(None)
        frozenset()
    """
    if not paths_string:
        return frozenset()
    return frozenset(path.strip() for path in paths_string.split(",") if path.strip())


def client_origin_from_request(request: Request) -> ClientOrigin:
    """Extract the network-origin fields the limiter keys on."""
    return ClientOrigin(
        peer_address=request.client.host if request.client else None,
        forwarded_for=request.headers.get("X-Forwarded-For"),
    )


def _hash_client_key(key: str) -> str:
    """Hash the client key for logging without exposing addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    """Attach quota-disclosure headers to a response.

    ``X-RateLimit-Reset`` is the absolute reset time in epoch milliseconds.
    """
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(decision.reset_time)


def retry_after_seconds(decision: RateLimitDecision) -> int:
    """Whole seconds from the check until the window resets, never negative."""
    return max(0, math.ceil((decision.reset_time - decision.checked_at) / 1000))


def rate_limit_middleware(
    limiter: AbstractRateLimiter,
    *,
    exempt_paths: Iterable[str] = (),
) -> HttpMiddleware:
    """Build an HTTP middleware enforcing ``limiter`` on every request.

    Admitted requests continue down the stack unchanged; rejected ones are
    answered with HTTP 429 and ``{"error": <message>}``. Quota headers are
    attached to every counted request, including admitted ones whose handler
    raised. The decision is exposed to handlers as ``request.state.rate_limit``.

    Args:
        limiter: Limiter instance owned by the application.
        exempt_paths: Request paths that bypass the limiter entirely.

    Returns:
        Middleware callable suitable for ``app.middleware("http")``.
    """

    exempt = frozenset(exempt_paths)
    message = limiter.config.message

    async def middleware(request: Request, call_next: CallNext) -> Response:
        if request.url.path in exempt:
            return await call_next(request)

        origin = client_origin_from_request(request)
        decision = limiter.check(origin)
        request.state.rate_limit = decision

        log_extra = {
            "client_hash": _hash_client_key(decision.client_key),
            "path": request.url.path,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "reset_time": decision.reset_time,
        }

        if decision.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
            try:
                response = await call_next(request)
            except Exception as exc:
                response = await general_exception_handler(request, exc)
        else:
            logger.warning("rate_limit.exceeded", extra=log_extra)
            response = JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": message},
            )
            response.headers["Retry-After"] = str(retry_after_seconds(decision))

        apply_rate_limit_headers(response, decision)
        return response

    return middleware
