"""Pydantic schemas for payment intents, client verify and webhook acks."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from gig_escrow.domain.enums import Provider


class CreatePaymentIntentRequest(BaseModel):
    """Request body for starting a checkout with a provider."""

    application_id: uuid.UUID
    provider: Provider = Field(..., description="Payment provider to check out with")
    provider_transaction_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="The provider's own id, when it is assigned at checkout creation (TradeSafe)",
    )


class AttachTransactionRequest(BaseModel):
    """Links a pending checkout to the id the provider assigned to it."""

    transaction_id: str = Field(..., min_length=1, max_length=128)


class PaymentIntentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_id: str = Field(description="Our correlation id, sent to the provider")
    provider: str
    provider_transaction_id: str | None = None
    application_id: uuid.UUID
    amount: Decimal
    status: str
    created_at: datetime


class VerifyPaymentRequest(BaseModel):
    """Client verify body, sent by the browser after the provider redirect."""

    payment_id: str = Field(..., min_length=1, max_length=128)
    reported_success: bool = Field(
        default=True,
        description=(
            "What the provider redirect reported; trusted only in sandbox mode "
            "for providers without a status lookup"
        ),
    )


class VerifyPaymentResponse(BaseModel):
    payment_id: str
    outcome: str = Field(description="funded, duplicate, pending, ignored, ...")


class WebhookAck(BaseModel):
    """Webhooks are always acknowledged with 200 so providers stop retrying."""

    received: bool = True
    processed: bool = Field(
        default=False,
        description="True when the delivery was authentic and queued for reconciliation",
    )
