"""Admin REST API routes: dispute mediation and platform config.

Routes:
    GET    /api/v1/admin/disputes                   — Active disputes
    POST   /api/v1/admin/disputes/{id}/resolve      — Resolve for worker or employer
    GET    /api/v1/admin/platform-config            — Current platform config
    PUT    /api/v1/admin/platform-config            — Update platform config

Every route requires an X-Admin-Id listed in ADMIN_USER_IDS.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gig_escrow.api.deps import get_db_session, get_dispute_service, require_admin
from gig_escrow.logging_config import get_logger
from gig_escrow.schemas.admin import (
    DisputeFavor,
    PlatformConfigResponse,
    ResolveDisputeRequest,
    UpdatePlatformConfigRequest,
)
from gig_escrow.schemas.applications import ApplicationResponse
from gig_escrow.services.config_service import PlatformConfigService
from gig_escrow.services.dispute_service import DisputeMediationService

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])
logger = get_logger(__name__)


@router.get("/disputes", response_model=list[ApplicationResponse])
async def list_disputes(
    admin_id: str = Depends(require_admin),
    svc: DisputeMediationService = Depends(get_dispute_service),
) -> list[ApplicationResponse]:
    applications = await svc.list_active_disputes()
    return [ApplicationResponse.model_validate(a) for a in applications]


@router.post("/disputes/{application_id}/resolve", response_model=ApplicationResponse)
async def resolve_dispute(
    application_id: uuid.UUID,
    body: ResolveDisputeRequest,
    admin_id: str = Depends(require_admin),
    svc: DisputeMediationService = Depends(get_dispute_service),
) -> ApplicationResponse:
    if body.favor == DisputeFavor.WORKER:
        application = await svc.resolve_in_favor_of_worker(
            application_id, admin_id=admin_id, notes=body.notes
        )
    else:
        application = await svc.resolve_in_favor_of_employer(
            application_id, admin_id=admin_id, notes=body.notes
        )
    return ApplicationResponse.model_validate(application)


@router.get("/platform-config", response_model=PlatformConfigResponse)
async def get_platform_config(
    admin_id: str = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> PlatformConfigResponse:
    config = await PlatformConfigService(session).load()
    return PlatformConfigResponse(**config.to_dict())


@router.put("/platform-config", response_model=PlatformConfigResponse)
async def update_platform_config(
    body: UpdatePlatformConfigRequest,
    admin_id: str = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> PlatformConfigResponse:
    config = await PlatformConfigService(session).save(
        body.model_dump(exclude_none=True), updated_by=admin_id
    )
    return PlatformConfigResponse(**config.to_dict())
