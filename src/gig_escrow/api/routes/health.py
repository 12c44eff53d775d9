"""Health check endpoint.

Verifies connectivity to the database and Redis, returns structured status.
Redis is optional: without it the service runs, only slower on duplicates.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gig_escrow.api.deps import get_session_maker
from gig_escrow.infrastructure.redis_client import get_redis, is_redis_available
from gig_escrow.logging_config import get_logger
from gig_escrow.schemas.admin import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> HealthResponse:
    db_status = "unknown"
    redis_status = "unavailable"

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    if is_redis_available():
        try:
            await get_redis().ping()
            redis_status = "healthy"
        except RedisError as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    return HealthResponse(
        status="ok" if db_status == "healthy" else "degraded",
        version="0.1.0",
        database=db_status,
        redis=redis_status,
    )
