"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a lock guards cleanup, creation, reset and increment.
- Windows start at each key's first request, not at wall-clock boundaries.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from app.adapters.rate_limit.base import (
    UNKNOWN_CLIENT_KEY,
    AbstractRateLimiter,
    ClientOrigin,
    CounterRecord,
    RateLimitConfig,
    RateLimitDecision,
)
from app.core.errors import ConfigurationAppError


def now_ms() -> int:
    """Current UNIX time in milliseconds."""
    return int(time.time() * 1000)


def derive_client_key(origin: ClientOrigin) -> str:
    """Resolve the identity a request is counted against.

    Prefers the direct peer address, then the first X-Forwarded-For entry,
    and finally a shared placeholder so anonymous requests never fail.

    Args:
        origin: Network-origin fields of the request.

    Returns:
        str: Client key, used verbatim as the store key.
    """

    if origin.peer_address:
        return origin.peer_address

    if origin.forwarded_for:
        first_hop = origin.forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    return UNKNOWN_CLIENT_KEY


class InMemoryRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per client key in a fixed window.

    The first request for a key opens a window of ``window_ms``; every
    further request in that window increments the counter. Once the window
    has elapsed the record is replaced by a fresh one (hard reset, no decay).

    Important:
        This limiter is per-process only. If the API runs with multiple
        workers, each worker enforces its own independent quota.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            config: Limiter configuration; defaults apply when omitted.
            clock: Time source returning UNIX time in milliseconds.

        Raises:
            ConfigurationAppError: If the window or ceiling is not positive.
        """
        config = config or RateLimitConfig()
        if config.window_ms < 1:
            raise ConfigurationAppError(
                code="invalid_rate_limit_window",
                message="window_ms must be >= 1",
                details={"field": "window_ms", "min_value": 1, "actual_value": config.window_ms},
            )
        if config.max_requests < 1:
            raise ConfigurationAppError(
                code="invalid_rate_limit_ceiling",
                message="max_requests must be >= 1",
                details={"field": "max_requests", "min_value": 1, "actual_value": config.max_requests},
            )

        self._config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._store: dict[str, CounterRecord] = {}

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _cleanup(self, now: int) -> None:
        """Drop every record whose window ended strictly before ``now``."""
        expired = [key for key, record in self._store.items() if record.window_reset_at < now]
        for key in expired:
            del self._store[key]

    def _new_record(self, now: int) -> CounterRecord:
        return CounterRecord(count=1, window_reset_at=now + self._config.window_ms)

    def check(self, origin: ClientOrigin) -> RateLimitDecision:
        """Count the request for its client key and decide admission.

        The count used for the decision includes the current request, so the
        request that pushes the count over the ceiling is itself denied.

        Args:
            origin: Network-origin fields of the incoming request.

        Returns:
            RateLimitDecision with allowance decision and quota metadata.
        """
        key = derive_client_key(origin)

        with self._lock:
            now = self._clock()
            self._cleanup(now)

            record = self._store.get(key)
            if record is None or now > record.window_reset_at:
                record = self._new_record(now)
                self._store[key] = record
            else:
                record.count += 1

            limit = self._config.max_requests
            return RateLimitDecision(
                allowed=record.count <= limit,
                limit=limit,
                remaining=max(0, limit - record.count),
                reset_time=record.window_reset_at,
                client_key=key,
                checked_at=now,
            )
