"""TradeSafeVerifier — header-signed JSON webhook.

TradeSafe signs the raw body with HMAC-SHA256 under the client secret and
sends the hex digest in `x-tradesafe-signature`. Its payloads carry no
application correlation id: the engine resolves the application through the
payment intent holding the TradeSafe transaction id.
"""

from __future__ import annotations

import hashlib
import hmac
import json

from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.verifier_protocol import (
    ProviderEvent,
    SignatureRequest,
    SignatureResult,
)
from gig_escrow.logging_config import get_logger, signature_prefix

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-tradesafe-signature"

_STATE_MAP: dict[str, ProviderOutcome] = {
    "FUNDS_RECEIVED": ProviderOutcome.SUCCEEDED,
    "FUNDS_DEPOSITED": ProviderOutcome.SUCCEEDED,
    "CANCELLED": ProviderOutcome.CANCELLED,
    # Payout-side states: acknowledged, nothing to reconcile
    "COMPLETED": ProviderOutcome.INFORMATIONAL,
    "ACCEPTED": ProviderOutcome.INFORMATIONAL,
}


def compute_signature(raw_body: bytes, client_secret: str) -> str:
    return hmac.new(client_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def map_state(state: str) -> ProviderOutcome | None:
    """Map a TradeSafe transaction state; None means unrecognized."""
    return _STATE_MAP.get(state.strip().upper())


class TradeSafeVerifier:
    """Verifier for TradeSafe transaction webhooks."""

    def __init__(self, client_secret: str) -> None:
        self.client_secret = client_secret

    def verify(self, request: SignatureRequest) -> SignatureResult:
        if not self.client_secret:
            return SignatureResult.rejected("tradesafe client secret not configured")
        if not request.signature:
            return SignatureResult.rejected("missing signature")

        expected = compute_signature(request.raw_body, self.client_secret)
        if not hmac.compare_digest(expected, request.signature.strip().lower()):
            logger.warning(
                "verifier.tradesafe.signature_mismatch",
                signature=signature_prefix(request.signature),
            )
            return SignatureResult.rejected("invalid signature")

        try:
            payload = json.loads(request.raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return SignatureResult.rejected("malformed payload")
        if not isinstance(payload, dict):
            return SignatureResult.rejected("malformed payload")

        transaction = payload.get("transaction") or {}
        if not isinstance(transaction, dict):
            return SignatureResult.rejected("malformed payload")
        transaction_id = transaction.get("id") or payload.get("transactionId")
        state = str(transaction.get("state") or payload.get("state") or "")

        outcome = map_state(state)
        if outcome is None:
            return SignatureResult.rejected("unrecognized status")
        if not transaction_id:
            return SignatureResult.rejected("missing transaction id")

        event = ProviderEvent(
            provider=Provider.TRADESAFE,
            payment_id=str(transaction_id),
            transaction_id=str(transaction_id),
            application_id=None,
            outcome=outcome,
            raw_status=state.strip().upper(),
        )
        return SignatureResult(valid=True, event=event)
