"""Pydantic schemas for admin dispute mediation and platform config."""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field


class DisputeFavor(StrEnum):
    WORKER = "worker"
    EMPLOYER = "employer"


class ResolveDisputeRequest(BaseModel):
    """Request body for an admin resolving a disputed completion."""

    favor: DisputeFavor = Field(..., description="Which party the admin rules for")
    notes: str | None = Field(default=None, max_length=5000)


class PlatformConfigResponse(BaseModel):
    platform_commission_percent: Decimal
    min_gig_amount: Decimal
    max_gig_amount: Decimal
    escrow_auto_release_days: int
    gig_expiry_timeout_days: int
    funding_timeout_hours: int


class UpdatePlatformConfigRequest(BaseModel):
    """Partial update; omitted fields keep their current value."""

    platform_commission_percent: Decimal | None = Field(default=None, description="0 to 50")
    min_gig_amount: Decimal | None = None
    max_gig_amount: Decimal | None = None
    escrow_auto_release_days: int | None = Field(default=None, description="1 to 30")
    gig_expiry_timeout_days: int | None = None
    funding_timeout_hours: int | None = None


class SweepResponse(BaseModel):
    """Summary of one sweep tick."""

    processed: int
    succeeded: int
    failed: int
    results: list[dict] = Field(default_factory=list)


class GigExpiryResponse(BaseModel):
    gig_id: str
    expired: bool


class AutoReleaseHealthResponse(BaseModel):
    status: str = "ok"
    due_for_auto_release: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
