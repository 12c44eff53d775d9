"""Pydantic schemas for the Applications API.

Separate from the ORM models so the API shape can change without touching
the database layer. Money is always Decimal; the database stores it as
NUMERIC(12, 2).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from gig_escrow.domain.enums import ActorRole

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateApplicationRequest(BaseModel):
    """Request body for a worker applying to a gig."""

    gig_id: uuid.UUID = Field(..., description="UUID of the gig being applied to")
    proposed_rate: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Worker's opening rate in rand",
        examples=[850.00],
    )
    note: str | None = Field(
        default=None,
        max_length=1000,
        description="Optional cover note shown next to the rate offer",
    )


class RateOfferRequest(BaseModel):
    """Request body for proposing or countering a rate."""

    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Offered rate in rand")
    role: ActorRole = Field(
        ...,
        description="Which side of the negotiation the caller is acting as",
        examples=["worker"],
    )
    note: str | None = Field(default=None, max_length=1000)


class ConfirmRateRequest(BaseModel):
    """Request body for confirming the other party's latest offer."""

    role: ActorRole


class RejectApplicationRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


class DisputeCompletionRequest(BaseModel):
    """Request body for an employer disputing a completion request."""

    reason: str = Field(
        ...,
        max_length=5000,
        description="Why the work is not complete (10 to 1000 characters after cleaning)",
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class ApplicationResponse(BaseModel):
    """Response schema for an application."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    gig_id: uuid.UUID
    worker_id: str
    employer_id: str
    status: str
    payment_status: str
    rate_status: str
    proposed_rate: Decimal
    agreed_rate: Decimal | None
    last_rate_amount: Decimal | None
    last_rate_by: str | None
    accepted_at: datetime | None
    funded_at: datetime | None
    completed_at: datetime | None
    completion_requested_at: datetime | None
    completion_auto_release_at: datetime | None
    completion_disputed_at: datetime | None
    completion_dispute_reason: str | None
    completion_resolution: str | None
    payment_id: str | None
    created_at: datetime
    updated_at: datetime


class RateHistoryResponse(BaseModel):
    """One entry of the append-only rate negotiation log."""

    model_config = ConfigDict(from_attributes=True)

    amount: Decimal
    proposer: str
    proposer_id: str
    note: str | None
    created_at: datetime


class ApplicationEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    application_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class ApplicationStatusResponse(BaseModel):
    """Lightweight status check response."""

    application_id: uuid.UUID
    status: str
    payment_status: str
    rate_status: str
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )
