"""Application lifecycle REST API routes.

Routes:
    POST   /api/v1/applications                          — Apply to a gig
    GET    /api/v1/applications/{id}                     — Application details
    GET    /api/v1/applications/{id}/status              — Status + allowed events
    GET    /api/v1/applications/{id}/events              — Audit trail
    GET    /api/v1/applications/{id}/rate-history        — Rate negotiation log
    POST   /api/v1/applications/{id}/rate                — Propose / counter a rate
    POST   /api/v1/applications/{id}/rate/confirm        — Confirm the open offer
    POST   /api/v1/applications/{id}/accept              — Employer accepts
    POST   /api/v1/applications/{id}/reject              — Employer rejects
    POST   /api/v1/applications/{id}/withdraw            — Worker withdraws
    POST   /api/v1/applications/{id}/completion/request  — Request completion
    POST   /api/v1/applications/{id}/completion/approve  — Employer approves
    POST   /api/v1/applications/{id}/completion/dispute  — Employer disputes

The caller is identified by the X-User-Id header.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from gig_escrow.api.deps import (
    get_application_service,
    get_current_user_id,
    get_platform_config,
)
from gig_escrow.domain.fees import PlatformConfig
from gig_escrow.logging_config import get_logger
from gig_escrow.schemas.applications import (
    ApplicationEventResponse,
    ApplicationResponse,
    ApplicationStatusResponse,
    ConfirmRateRequest,
    CreateApplicationRequest,
    DisputeCompletionRequest,
    RateHistoryResponse,
    RateOfferRequest,
    RejectApplicationRequest,
)
from gig_escrow.services.application_service import ApplicationService

router = APIRouter(prefix="/api/v1/applications", tags=["Applications"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create & read
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ApplicationResponse,
    status_code=201,
    summary="Apply to a gig",
)
async def create_application(
    body: CreateApplicationRequest,
    user_id: str = Depends(get_current_user_id),
    config: PlatformConfig = Depends(get_platform_config),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.create_application(
        gig_id=body.gig_id,
        worker_id=user_id,
        proposed_rate=body.proposed_rate,
        config=config,
        note=body.note,
    )
    return ApplicationResponse.model_validate(application)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: uuid.UUID,
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.get_application(application_id)
    return ApplicationResponse.model_validate(application)


@router.get("/{application_id}/status", response_model=ApplicationStatusResponse)
async def get_application_status(
    application_id: uuid.UUID,
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationStatusResponse:
    return ApplicationStatusResponse(**await svc.get_status(application_id))


@router.get("/{application_id}/events", response_model=list[ApplicationEventResponse])
async def get_application_events(
    application_id: uuid.UUID,
    svc: ApplicationService = Depends(get_application_service),
) -> list[ApplicationEventResponse]:
    events = await svc.get_events(application_id)
    return [ApplicationEventResponse.model_validate(e) for e in events]


@router.get("/{application_id}/rate-history", response_model=list[RateHistoryResponse])
async def get_rate_history(
    application_id: uuid.UUID,
    svc: ApplicationService = Depends(get_application_service),
) -> list[RateHistoryResponse]:
    entries = await svc.get_rate_history(application_id)
    return [RateHistoryResponse.model_validate(e) for e in entries]


# ---------------------------------------------------------------------------
# Rate negotiation
# ---------------------------------------------------------------------------


@router.post("/{application_id}/rate", response_model=ApplicationResponse)
async def propose_rate(
    application_id: uuid.UUID,
    body: RateOfferRequest,
    user_id: str = Depends(get_current_user_id),
    config: PlatformConfig = Depends(get_platform_config),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.propose_or_counter_rate(
        application_id=application_id,
        actor_id=user_id,
        actor_role=body.role,
        amount=body.amount,
        config=config,
        note=body.note,
    )
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/rate/confirm", response_model=ApplicationResponse)
async def confirm_rate(
    application_id: uuid.UUID,
    body: ConfirmRateRequest,
    user_id: str = Depends(get_current_user_id),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.confirm_rate(application_id, actor_id=user_id, actor_role=body.role)
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Accept / reject / withdraw
# ---------------------------------------------------------------------------


@router.post("/{application_id}/accept", response_model=ApplicationResponse)
async def accept_application(
    application_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.accept(application_id, employer_id=user_id)
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: uuid.UUID,
    body: RejectApplicationRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    reason = body.reason if body else None
    application = await svc.reject(application_id, employer_id=user_id, reason=reason)
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.withdraw(application_id, worker_id=user_id)
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


@router.post("/{application_id}/completion/request", response_model=ApplicationResponse)
async def request_completion(
    application_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    config: PlatformConfig = Depends(get_platform_config),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.request_completion(
        application_id, requested_by=user_id, config=config
    )
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/completion/approve", response_model=ApplicationResponse)
async def approve_completion(
    application_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.approve_completion(application_id, employer_id=user_id)
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/completion/dispute", response_model=ApplicationResponse)
async def dispute_completion(
    application_id: uuid.UUID,
    body: DisputeCompletionRequest,
    user_id: str = Depends(get_current_user_id),
    svc: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await svc.dispute_completion(
        application_id, employer_id=user_id, reason=body.reason
    )
    return ApplicationResponse.model_validate(application)
