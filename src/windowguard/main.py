"""FastAPI application factory.

A minimal app protected by the rate limit middleware, wired from settings.
Useful as a deployment smoke test and as a usage example.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request

from windowguard.config import Settings, settings as default_settings
from windowguard.core.errors import register_exception_handlers
from windowguard.core.logging import configure_logging
from windowguard.core.rate_limit import RateLimit, RateLimitMiddleware, RateLimitOptions
from windowguard.core.rate_limit.stores import Store, create_store


logger = structlog.get_logger()

# Paths never rate limited
EXCLUDED_PATHS = frozenset({"/health/live", "/docs", "/redoc", "/openapi.json"})


def _skip_excluded(request: Request) -> bool:
    return request.url.path in EXCLUDED_PATHS


def create_app(
    settings: Settings | None = None,
    store: Store | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (default: global settings)
        store: Rate limit store (default: built from settings)

    Returns:
        Configured FastAPI application instance.
    """
    cfg = settings or default_settings
    configure_logging(cfg)

    limiter = RateLimit(
        RateLimitOptions.from_settings(
            cfg,
            store=store if store is not None else create_store(cfg),
            skip=_skip_excluded,
        )
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "application_startup",
            app_name=cfg.app_name,
            environment=cfg.environment,
            store=type(limiter.store).__name__,
        )
        await limiter.store.setup()

        yield

        logger.info("application_shutdown")
        await limiter.store.close()

    app = FastAPI(
        title=cfg.app_name,
        debug=cfg.debug,
        lifespan=lifespan,
        docs_url="/docs" if not cfg.is_production else None,
        redoc_url="/redoc" if not cfg.is_production else None,
        openapi_url="/openapi.json" if not cfg.is_production else None,
    )
    register_exception_handlers(app)
    app.state.limiter = limiter
    app.add_middleware(RateLimitMiddleware, limiter=limiter)

    @app.get("/health/live", tags=["health"])
    async def liveness() -> dict[str, str]:
        """Liveness probe, never rate limited."""
        return {"status": "alive"}

    @app.get("/rate-limit", tags=["rate-limit"])
    async def rate_limit_status(request: Request) -> dict[str, Any]:
        """Report the caller's current window."""
        result = getattr(request.state, "rate_limit", None)
        if result is None:
            return {"limited": False}
        return {
            "limited": True,
            "limit": result.limit,
            "current": result.current,
            "remaining": result.remaining,
            "reset": result.reset,
        }

    return app
