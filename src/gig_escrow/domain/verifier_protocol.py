"""Signature Verifier Protocol.

Defines the interface that every payment-provider verifier implements, and
the normalized ProviderEvent that crosses from the HTTP boundary into the
reconciliation engine. Provider-specific payload shapes never go deeper than
the verifier: the engine only ever sees a ProviderEvent.

This is a Protocol (structural subtyping) so concrete verifiers don't need
to inherit from a base class, they just need to match the shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol, runtime_checkable

from gig_escrow.domain.enums import Provider, ProviderOutcome


@dataclass(frozen=True)
class ProviderEvent:
    """A verified, provider-independent payment event.

    Attributes:
        provider: Which provider reported the event.
        payment_id: Idempotency key (our m_payment_id / Paystack reference).
        transaction_id: The provider's own transaction id.
        application_id: Correlation id embedded in the original funding request.
        outcome: Normalized outcome derived from raw_status.
        raw_status: The provider's status code, kept for audit.
        gross_amount / fee_amount / net_amount: Money as reported by the provider.
    """

    provider: Provider
    payment_id: str
    transaction_id: str | None
    application_id: str | None
    outcome: ProviderOutcome
    raw_status: str
    gross_amount: Decimal | None = None
    fee_amount: Decimal | None = None
    net_amount: Decimal | None = None

    @property
    def idempotency_key(self) -> str:
        return self.payment_id or (self.transaction_id or "")

    def to_dict(self) -> dict:
        """Serialize for audit event metadata."""
        return {
            "provider": self.provider.value,
            "payment_id": self.payment_id,
            "transaction_id": self.transaction_id,
            "application_id": self.application_id,
            "outcome": self.outcome.value,
            "raw_status": self.raw_status,
            "gross_amount": str(self.gross_amount) if self.gross_amount is not None else None,
            "fee_amount": str(self.fee_amount) if self.fee_amount is not None else None,
            "net_amount": str(self.net_amount) if self.net_amount is not None else None,
        }


@dataclass(frozen=True)
class SignatureRequest:
    """Input to a verifier.

    Attributes:
        provider: Provider the callback claims to come from.
        raw_body: Exact request body bytes (header-signed JSON providers).
        form_fields: Decoded form fields (signed form-post providers).
        signature: Claimed signature, from a header or a form field.
        source_ip: Caller address, for providers with an egress allow-list.
    """

    provider: Provider
    raw_body: bytes = b""
    form_fields: dict[str, str] = field(default_factory=dict)
    signature: str | None = None
    source_ip: str | None = None


@dataclass(frozen=True)
class SignatureResult:
    """Output from a verifier.

    Attributes:
        valid: Whether the callback is authentic and well-formed.
        reason: Why verification failed (empty when valid).
        event: The normalized event, present only when valid.
    """

    valid: bool
    reason: str = ""
    event: ProviderEvent | None = None

    @classmethod
    def rejected(cls, reason: str) -> SignatureResult:
        return cls(valid=False, reason=reason)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "reason": self.reason,
            "event": self.event.to_dict() if self.event else None,
        }


@runtime_checkable
class SignatureVerifier(Protocol):
    """Protocol that all provider verifiers must satisfy.

    Concrete implementations:
        - verifiers/payfast.py    (signed form-post ITN, MD5 + IP allow-list)
        - verifiers/paystack.py   (HMAC-SHA512 header-signed JSON)
        - verifiers/tradesafe.py  (HMAC-SHA256 header-signed JSON)

    verify() must never raise: every failure becomes SignatureResult(valid=False).
    """

    def verify(self, request: SignatureRequest) -> SignatureResult:
        ...


@runtime_checkable
class PaymentStatusLookup(Protocol):
    """Server-to-server query of a provider's view of one payment.

    Used by the client verify path so funding follows the provider's answer,
    never the browser's claim. Implementations live in
    infrastructure/provider_clients.py; tests pass a fake.

    lookup() returns None when the provider does not know the payment and
    raises ProviderLookupError when the provider cannot be reached.
    """

    async def lookup(self, payment_id: str, transaction_id: str | None) -> ProviderEvent | None:
        ...
