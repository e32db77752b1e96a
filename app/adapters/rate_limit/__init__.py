"""Rate limiting adapters.

This package provides a small abstraction layer so the API can start with an
in-memory limiter and later migrate to Redis or another shared store without
changing the HTTP layer.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    ClientOrigin,
    RateLimitConfig,
    RateLimitDecision,
)
from app.adapters.rate_limit.in_memory import InMemoryRateLimiter, derive_client_key

__all__ = [
    "AbstractRateLimiter",
    "ClientOrigin",
    "InMemoryRateLimiter",
    "RateLimitConfig",
    "RateLimitDecision",
    "derive_client_key",
]
