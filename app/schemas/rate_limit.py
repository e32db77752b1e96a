"""Pydantic schemas for rate limit status responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitStatusResponse(BaseModel):
    """Caller's quota state after the current request was counted."""

    enabled: bool = Field(
        True, description="Whether rate limiting is active for this route."
    )
    allowed: bool | None = Field(
        default=None, description="Admission decision for the current request."
    )
    limit: int | None = Field(
        default=None, description="Maximum requests per window."
    )
    remaining: int | None = Field(
        default=None, description="Requests left in the current window."
    )
    reset_time: int | None = Field(
        default=None,
        description="Epoch milliseconds at which the current window resets.",
    )
