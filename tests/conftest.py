"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set here, before any app import, so settings are
built from known values instead of a developer's .env file.
"""

from __future__ import annotations

import os

import pytest

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("APP_RATE_LIMIT_WINDOW_MS", "900000")
os.environ.setdefault("APP_RATE_LIMIT_MAX_REQUESTS", "100")
os.environ.setdefault("LOG_LEVEL", "WARNING")


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_700_000_000_000)
