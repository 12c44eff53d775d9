"""PaystackVerifier — header-signed JSON webhook.

Paystack signs the raw request body with HMAC-SHA512 under the merchant's
secret key and sends the hex digest in `x-paystack-signature`. Amounts are in
kobo (minor units) and are divided by 100 here so the engine only sees rands.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from decimal import Decimal, InvalidOperation

from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.verifier_protocol import (
    ProviderEvent,
    SignatureRequest,
    SignatureResult,
)
from gig_escrow.logging_config import get_logger, signature_prefix

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(raw_body: bytes, secret_key: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def kobo_to_rand(value: object) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return (Decimal(str(value)) / Decimal(100)).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


class PaystackVerifier:
    """Verifier for Paystack charge webhooks."""

    def __init__(self, secret_key: str) -> None:
        self.secret_key = secret_key

    def verify(self, request: SignatureRequest) -> SignatureResult:
        if not self.secret_key:
            return SignatureResult.rejected("paystack secret key not configured")
        if not request.signature:
            return SignatureResult.rejected("missing signature")

        expected = compute_signature(request.raw_body, self.secret_key)
        if not hmac.compare_digest(expected, request.signature.strip().lower()):
            logger.warning(
                "verifier.paystack.signature_mismatch",
                signature=signature_prefix(request.signature),
            )
            return SignatureResult.rejected("invalid signature")

        try:
            payload = json.loads(request.raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return SignatureResult.rejected("malformed payload")
        if not isinstance(payload, dict):
            return SignatureResult.rejected("malformed payload")

        event_name = payload.get("event", "")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            return SignatureResult.rejected("malformed payload")
        raw_status = str(data.get("status", ""))

        if event_name == "charge.success":
            outcome = (
                ProviderOutcome.SUCCEEDED
                if raw_status == "success"
                else ProviderOutcome.PENDING
            )
        elif event_name == "charge.failed":
            outcome = ProviderOutcome.FAILED
        else:
            return SignatureResult.rejected("unrecognized status")

        reference = data.get("reference")
        if not reference:
            return SignatureResult.rejected("missing reference")

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}

        transaction_id = data.get("id")
        gross = kobo_to_rand(data.get("amount"))
        fee = kobo_to_rand(data.get("fees"))
        event = ProviderEvent(
            provider=Provider.PAYSTACK,
            payment_id=str(reference),
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            application_id=metadata.get("application_id"),
            outcome=outcome,
            raw_status=f"{event_name}:{raw_status}",
            gross_amount=gross,
            fee_amount=fee,
            net_amount=gross - fee if gross is not None and fee is not None else None,
        )
        return SignatureResult(valid=True, event=event)
