"""Application factory for the FastAPI app.

This is the composition root: it owns the process-wide rate limiter and
hands it explicitly to the middleware that enforces it.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI

from app.adapters.rate_limit.base import RateLimitConfig
from app.adapters.rate_limit.in_memory import InMemoryRateLimiter, now_ms
from app.api.routes import health_router, rate_limit_router
from app.core.config import AppSettings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.rate_limit import parse_exempt_paths, rate_limit_middleware

logger = logging.getLogger(__name__)


def build_rate_limiter(
    app_settings: AppSettings,
    *,
    clock: Callable[[], int] = now_ms,
) -> InMemoryRateLimiter:
    """Construct the limiter from application settings.

    Raises:
        ConfigurationAppError: If the configured window or ceiling is invalid.
    """
    config = RateLimitConfig(
        window_ms=app_settings.rate_limit_window_ms,
        max_requests=app_settings.rate_limit_max_requests,
        message=app_settings.rate_limit_message,
    )
    return InMemoryRateLimiter(config, clock=clock)


def create_app(
    app_settings: AppSettings | None = None,
    *,
    clock: Callable[[], int] = now_ms,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Overrides the global application settings (tests).
        clock: Epoch-millisecond time source for the rate limiter.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = app_settings or settings.app

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Truck Parking API",
        description=(
            "Marketplace API for truck parking listings. Every non-exempt "
            "route is rate limited per client and discloses its quota via "
            "X-RateLimit-* headers."
        ),
        version="0.1.0",
        debug=cfg.debug,
    )

    # Middleware: the last one registered runs first, so request ids are
    # bound before the limiter logs or rejects.
    if cfg.rate_limit_enabled:
        limiter = build_rate_limiter(cfg, clock=clock)
        app.state.rate_limiter = limiter
        app.middleware("http")(
            rate_limit_middleware(
                limiter,
                exempt_paths=parse_exempt_paths(cfg.rate_limit_exempt_paths),
            )
        )
        logger.info(
            "rate_limit.configured",
            extra={
                "window_ms": limiter.config.window_ms,
                "max_requests": limiter.config.max_requests,
            },
        )
    else:
        app.state.rate_limiter = None
        logger.warning("rate_limit.disabled")

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    return app
