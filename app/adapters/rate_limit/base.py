"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the in-memory store can later be swapped for a shared backend (e.g., Redis)
with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_WINDOW_MS = 15 * 60 * 1000
DEFAULT_MAX_REQUESTS = 100
DEFAULT_MESSAGE = "Too many requests, please try again later."

# Shared identity for requests that carry no address signal at all.
UNKNOWN_CLIENT_KEY = "unknown"


@dataclass(frozen=True)
class RateLimitConfig:
    """Limiter configuration, immutable for the lifetime of a limiter.

    Attributes:
        window_ms: Length of the counting window in milliseconds.
        max_requests: Admission ceiling per window and client key.
        message: Text returned to rejected callers.
    """

    window_ms: int = DEFAULT_WINDOW_MS
    max_requests: int = DEFAULT_MAX_REQUESTS
    message: str = DEFAULT_MESSAGE


@dataclass(frozen=True)
class ClientOrigin:
    """Network-origin fields of a request used to identify the client.

    Attributes:
        peer_address: Address of the directly connected peer, if known.
        forwarded_for: Raw value of the X-Forwarded-For header, if present.
    """

    peer_address: str | None = None
    forwarded_for: str | None = None


@dataclass
class CounterRecord:
    """Per-key counter state for the active window."""

    count: int
    window_reset_at: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of an admission check.

    Attributes:
        allowed: Whether the request is within quota.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when blocked).
        reset_time: Epoch milliseconds at which the window resets.
        client_key: Identity the request was counted against.
        checked_at: Epoch milliseconds at which the check ran.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    client_key: str
    checked_at: int


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @property
    @abstractmethod
    def config(self) -> RateLimitConfig:
        """Configuration enforced by this limiter."""
        raise NotImplementedError

    @abstractmethod
    def check(self, origin: ClientOrigin) -> RateLimitDecision:
        """Count the request and decide whether it is admitted.

        Args:
            origin: Network-origin fields of the incoming request.

        Returns:
            RateLimitDecision describing the admission and quota state.
        """
        raise NotImplementedError
