"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
services, the per-request platform config, and caller identity.

Identity comes from upstream headers: X-User-Id for marketplace users,
X-Admin-Id for admins (checked against ADMIN_USER_IDS), and a bearer
CRON_SECRET for the scheduler.
"""

from __future__ import annotations

import hmac
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gig_escrow.config import Settings, get_settings
from gig_escrow.domain.enums import Provider
from gig_escrow.domain.fees import PlatformConfig
from gig_escrow.domain.verifier_protocol import PaymentStatusLookup
from gig_escrow.infrastructure.database.engine import get_session_factory
from gig_escrow.infrastructure.provider_clients import build_status_lookup
from gig_escrow.logging_config import get_logger
from gig_escrow.services.application_service import ApplicationService
from gig_escrow.services.config_service import load_platform_config
from gig_escrow.services.dispute_service import DisputeMediationService
from gig_escrow.services.escrow_service import EscrowReconciliationService

logger = get_logger(__name__)


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Provide the session factory (overridden in tests)."""
    return get_session_factory()


async def get_db_session(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request.

    Committed on success, rolled back on error.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_platform_config(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> PlatformConfig:
    """Load the platform config once for this request."""
    return await load_platform_config(factory)


async def get_application_service(
    session: AsyncSession = Depends(get_db_session),
) -> ApplicationService:
    return ApplicationService(session)


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
) -> EscrowReconciliationService:
    return EscrowReconciliationService(session)


async def get_dispute_service(
    session: AsyncSession = Depends(get_db_session),
) -> DisputeMediationService:
    return DisputeMediationService(session)


def get_status_lookup(
    provider: Provider,
    settings: Settings = Depends(get_app_settings),
) -> PaymentStatusLookup | None:
    """Server-to-server status client for the provider in the path, if configured."""
    return build_status_lookup(provider, settings)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Marketplace user id forwarded by the upstream auth layer."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def require_admin(
    x_admin_id: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Admin id, which must be listed in ADMIN_USER_IDS."""
    admin_id = (x_admin_id or "").strip()
    if not admin_id:
        raise HTTPException(status_code=401, detail="Missing X-Admin-Id header")
    if admin_id not in settings.admin_user_id_list:
        logger.warning("admin.forbidden", admin_id=admin_id)
        raise HTTPException(status_code=403, detail="Admin access required")
    return admin_id


def require_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Bearer CRON_SECRET check. An unset secret locks the cron routes."""
    expected = f"Bearer {settings.cron_secret}"
    if not settings.cron_secret or not hmac.compare_digest(
        (authorization or "").encode(), expected.encode()
    ):
        logger.warning("cron.unauthorized")
        raise HTTPException(status_code=401, detail="Unauthorized")
