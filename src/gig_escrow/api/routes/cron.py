"""Scheduler REST API routes.

Routes:
    POST   /api/v1/cron/sweep                — Run every expiry rule once
    POST   /api/v1/cron/gigs/{id}/expire     — Check a single gig now
    GET    /api/v1/cron/auto-release         — Count of completions due for release

POST routes require `Authorization: Bearer <CRON_SECRET>`.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gig_escrow.api.deps import get_app_settings, get_session_maker, require_cron_secret
from gig_escrow.config import Settings
from gig_escrow.logging_config import get_logger
from gig_escrow.schemas.admin import (
    AutoReleaseHealthResponse,
    GigExpiryResponse,
    SweepResponse,
)
from gig_escrow.services.expiry_sweeper import ExpirySweeper

router = APIRouter(prefix="/api/v1/cron", tags=["Cron"])
logger = get_logger(__name__)


def _sweeper(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    settings: Settings = Depends(get_app_settings),
) -> ExpirySweeper:
    return ExpirySweeper(session_factory, alert_error_ratio=settings.sweep_alert_error_ratio)


@router.post(
    "/sweep",
    response_model=SweepResponse,
    dependencies=[Depends(require_cron_secret)],
    summary="Run one sweep tick",
)
async def run_sweep(sweeper: ExpirySweeper = Depends(_sweeper)) -> SweepResponse:
    report = await sweeper.sweep_all()
    return SweepResponse(**report.to_dict())


@router.post(
    "/gigs/{gig_id}/expire",
    response_model=GigExpiryResponse,
    dependencies=[Depends(require_cron_secret)],
    summary="Check and expire a single gig",
)
async def expire_gig(
    gig_id: uuid.UUID,
    sweeper: ExpirySweeper = Depends(_sweeper),
) -> GigExpiryResponse:
    expired = await sweeper.check_and_expire_gig(gig_id)
    return GigExpiryResponse(gig_id=str(gig_id), expired=expired)


@router.get("/auto-release", response_model=AutoReleaseHealthResponse)
async def auto_release_health(
    sweeper: ExpirySweeper = Depends(_sweeper),
) -> AutoReleaseHealthResponse:
    return AutoReleaseHealthResponse(due_for_auto_release=await sweeper.count_due_for_auto_release())
