"""Payment REST API routes: provider webhooks, client verify, intents.

Routes:
    POST   /api/v1/payments/payfast/itn          — PayFast ITN (form post)
    POST   /api/v1/payments/paystack/webhook     — Paystack webhook (raw JSON)
    POST   /api/v1/payments/tradesafe/webhook    — TradeSafe webhook (raw JSON)
    POST   /api/v1/payments/{provider}/verify    — Client verify after redirect
    POST   /api/v1/payments/intents              — Start a checkout
    POST   /api/v1/payments/intents/{id}/transaction — Attach the provider's id

Webhooks always answer 200 so providers stop retrying; the signature is
verified before the response and reconciliation runs as a background task.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gig_escrow.api.deps import (
    get_app_settings,
    get_current_user_id,
    get_escrow_service,
    get_platform_config,
    get_session_maker,
    get_status_lookup,
)
from gig_escrow.config import Settings
from gig_escrow.domain.enums import Provider
from gig_escrow.domain.fees import PlatformConfig
from gig_escrow.domain.verifier_protocol import PaymentStatusLookup, SignatureRequest
from gig_escrow.logging_config import get_logger, signature_prefix
from gig_escrow.schemas.payments import (
    AttachTransactionRequest,
    CreatePaymentIntentRequest,
    PaymentIntentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)
from gig_escrow.services.escrow_service import (
    EscrowReconciliationService,
    process_provider_event,
    run_client_verify,
)
from gig_escrow.verifiers import SignatureVerifierFactory
from gig_escrow.verifiers import paystack as paystack_verifier
from gig_escrow.verifiers import tradesafe as tradesafe_verifier

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])
logger = get_logger(__name__)


def _source_ip(request: Request) -> str | None:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def _accept_delivery(
    provider: Provider,
    signature_request: SignatureRequest,
    settings: Settings,
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker[AsyncSession],
) -> WebhookAck:
    try:
        verifier = SignatureVerifierFactory.create(provider.value, settings)
        result = verifier.verify(signature_request)
    except Exception:
        logger.exception(
            "webhook.verifier_error",
            provider=provider.value,
            signature=signature_prefix(signature_request.signature),
            source_ip=signature_request.source_ip,
        )
        return WebhookAck(received=True, processed=False)
    if not result.valid:
        logger.warning(
            "webhook.rejected",
            provider=provider.value,
            reason=result.reason,
            signature=signature_prefix(signature_request.signature),
            source_ip=signature_request.source_ip,
        )
        return WebhookAck(received=True, processed=False)

    event = result.event
    logger.info(
        "webhook.accepted",
        provider=provider.value,
        payment_id=event.payment_id,
        outcome=event.outcome.value,
    )
    background_tasks.add_task(process_provider_event, event, session_factory)
    return WebhookAck(received=True, processed=True)


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


@router.post(
    "/payfast/itn",
    response_model=WebhookAck,
    summary="PayFast Instant Transaction Notification",
)
async def payfast_itn(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_app_settings),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> WebhookAck:
    form = await request.form()
    fields = {key: str(value) for key, value in form.items()}
    signature_request = SignatureRequest(
        provider=Provider.PAYFAST,
        form_fields=fields,
        signature=fields.get("signature"),
        source_ip=_source_ip(request),
    )
    return _accept_delivery(
        Provider.PAYFAST, signature_request, settings, background_tasks, session_factory
    )


@router.post(
    "/paystack/webhook",
    response_model=WebhookAck,
    summary="Paystack webhook",
)
async def paystack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_app_settings),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> WebhookAck:
    signature_request = SignatureRequest(
        provider=Provider.PAYSTACK,
        raw_body=await request.body(),
        signature=request.headers.get(paystack_verifier.SIGNATURE_HEADER),
        source_ip=_source_ip(request),
    )
    return _accept_delivery(
        Provider.PAYSTACK, signature_request, settings, background_tasks, session_factory
    )


@router.post(
    "/tradesafe/webhook",
    response_model=WebhookAck,
    summary="TradeSafe webhook",
)
async def tradesafe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_app_settings),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> WebhookAck:
    signature_request = SignatureRequest(
        provider=Provider.TRADESAFE,
        raw_body=await request.body(),
        signature=request.headers.get(tradesafe_verifier.SIGNATURE_HEADER),
        source_ip=_source_ip(request),
    )
    return _accept_delivery(
        Provider.TRADESAFE, signature_request, settings, background_tasks, session_factory
    )


# ---------------------------------------------------------------------------
# Client verify & intents
# ---------------------------------------------------------------------------


@router.post(
    "/intents",
    response_model=PaymentIntentResponse,
    status_code=201,
    summary="Create a payment intent for an accepted application",
)
async def create_payment_intent(
    body: CreatePaymentIntentRequest,
    user_id: str = Depends(get_current_user_id),
    config: PlatformConfig = Depends(get_platform_config),
    svc: EscrowReconciliationService = Depends(get_escrow_service),
) -> PaymentIntentResponse:
    intent = await svc.create_payment_intent(
        application_id=body.application_id,
        employer_id=user_id,
        provider=body.provider,
        config=config,
        provider_transaction_id=body.provider_transaction_id,
    )
    return PaymentIntentResponse.model_validate(intent)


@router.post(
    "/intents/{payment_id}/transaction",
    response_model=PaymentIntentResponse,
    summary="Attach the provider's transaction id to a pending checkout",
)
async def attach_provider_transaction(
    payment_id: str,
    body: AttachTransactionRequest,
    user_id: str = Depends(get_current_user_id),
    svc: EscrowReconciliationService = Depends(get_escrow_service),
) -> PaymentIntentResponse:
    intent = await svc.attach_provider_transaction(
        payment_id=payment_id,
        employer_id=user_id,
        transaction_id=body.transaction_id,
    )
    return PaymentIntentResponse.model_validate(intent)


@router.post(
    "/{provider}/verify",
    response_model=VerifyPaymentResponse,
    summary="Client verify after the provider redirect",
)
async def verify_payment(
    provider: Provider,
    body: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_app_settings),
    config: PlatformConfig = Depends(get_platform_config),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    status_lookup: PaymentStatusLookup | None = Depends(get_status_lookup),
) -> VerifyPaymentResponse:
    """Ask the provider when it has a status lookup; otherwise reconcile
    synchronously in sandbox mode and report state in live mode.

    Races the webhook through the same conditional write, so whichever
    path loses sees DUPLICATE.
    """
    outcome = await run_client_verify(
        provider=provider,
        payment_id=body.payment_id,
        employer_id=user_id,
        reported_success=body.reported_success,
        session_factory=session_factory,
        config=config,
        sandbox=settings.is_sandbox(provider.value),
        status_lookup=status_lookup,
    )
    return VerifyPaymentResponse(payment_id=body.payment_id, outcome=outcome.value)
