"""FastAPI application entry point for the Gig Escrow Engine.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode).
    2. Running: Serve the REST API and provider webhooks on one Uvicorn process.
    3. Shutdown: Close database and Redis connections gracefully.

Redis is optional. Without it webhook idempotency falls back to the
database constraints alone.

Run with:
    uv run uvicorn gig_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from redis.exceptions import RedisError

from gig_escrow.config import get_settings
from gig_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        payfast_sandbox=settings.payfast_sandbox,
    )

    from gig_escrow.infrastructure.database.engine import close_db, init_db

    await init_db()

    from gig_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except (RedisError, OSError) as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Gig Escrow Engine",
        description=(
            "Application lifecycle and escrow settlement for a gig marketplace. "
            "Funds are held from payment until completion is approved, "
            "auto-released or resolved by an admin."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from gig_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from gig_escrow.api.routes.admin import router as admin_router
    from gig_escrow.api.routes.applications import router as applications_router
    from gig_escrow.api.routes.cron import router as cron_router
    from gig_escrow.api.routes.health import router as health_router
    from gig_escrow.api.routes.payments import router as payments_router

    app.include_router(health_router)
    app.include_router(applications_router)
    app.include_router(payments_router)
    app.include_router(admin_router)
    app.include_router(cron_router)

    return app


# The app instance used by Uvicorn
app = create_app()
