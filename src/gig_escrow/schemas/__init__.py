"""Pydantic API schemas."""

from gig_escrow.schemas.admin import (
    AutoReleaseHealthResponse,
    DisputeFavor,
    GigExpiryResponse,
    HealthResponse,
    PlatformConfigResponse,
    ResolveDisputeRequest,
    SweepResponse,
    UpdatePlatformConfigRequest,
)
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
from gig_escrow.schemas.payments import (
    CreatePaymentIntentRequest,
    PaymentIntentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)

__all__ = [
    "ApplicationEventResponse",
    "ApplicationResponse",
    "ApplicationStatusResponse",
    "AutoReleaseHealthResponse",
    "ConfirmRateRequest",
    "CreateApplicationRequest",
    "CreatePaymentIntentRequest",
    "DisputeCompletionRequest",
    "DisputeFavor",
    "GigExpiryResponse",
    "HealthResponse",
    "PaymentIntentResponse",
    "PlatformConfigResponse",
    "RateHistoryResponse",
    "RateOfferRequest",
    "RejectApplicationRequest",
    "ResolveDisputeRequest",
    "SweepResponse",
    "UpdatePlatformConfigRequest",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "WebhookAck",
]
