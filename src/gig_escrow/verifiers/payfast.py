"""PayFastVerifier — signed form-post ITN (Instant Transaction Notification).

Verification flow:
    1. In live mode, check the source IP against PayFast's egress allow-list.
    2. Recompute the MD5 signature over the alphabetically sorted fields.
    3. Compare to the posted `signature` field in constant time.
    4. Map payment_status to a ProviderOutcome; unknown codes are rejected.

Values are trimmed but NOT url-decoded before hashing: PayFast signs the
plain text it posted, and the form body was already decoded by the framework.
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal, InvalidOperation

from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.verifier_protocol import (
    ProviderEvent,
    SignatureRequest,
    SignatureResult,
)
from gig_escrow.logging_config import get_logger, signature_prefix

logger = get_logger(__name__)

PAYFAST_VALID_IPS: frozenset[str] = frozenset(
    {
        "197.97.145.144",
        "41.74.179.194",
        "41.74.179.195",
        "41.74.179.196",
        "41.74.179.197",
        "41.74.179.198",
        "41.74.179.199",
    }
)

_STATUS_MAP: dict[str, ProviderOutcome] = {
    "COMPLETE": ProviderOutcome.SUCCEEDED,
    "FAILED": ProviderOutcome.FAILED,
    "CANCELLED": ProviderOutcome.CANCELLED,
    "PENDING": ProviderOutcome.PENDING,
}


def generate_signature(fields: dict[str, str], passphrase: str = "") -> str:
    """Compute the lowercase hex MD5 signature PayFast expects for an ITN."""
    pairs = [
        f"{key}={str(value).strip()}"
        for key, value in sorted(fields.items())
        if key != "signature" and value is not None and str(value) != ""
    ]
    signature_string = "&".join(pairs)
    if passphrase and passphrase.strip():
        signature_string += f"&passphrase={passphrase.strip()}"
    return hashlib.md5(signature_string.encode("utf-8")).hexdigest().lower()


def _parse_amount(value: str | None) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return None


class PayFastVerifier:
    """Verifier for PayFast ITN form posts."""

    def __init__(self, passphrase: str = "", sandbox: bool = True) -> None:
        self.passphrase = passphrase
        self.sandbox = sandbox

    def verify(self, request: SignatureRequest) -> SignatureResult:
        fields = request.form_fields
        payment_id = fields.get("m_payment_id", "")

        # --- Step 1: Source IP allow-list (live mode only) ---
        if not self.sandbox and request.source_ip not in PAYFAST_VALID_IPS:
            logger.warning(
                "verifier.payfast.ip_rejected",
                source_ip=request.source_ip,
                payment_id=payment_id,
            )
            return SignatureResult.rejected(
                f"Invalid source IP: {request.source_ip}. ITN must come from PayFast servers."
            )

        # --- Step 2: Signature ---
        claimed = request.signature or fields.get("signature", "")
        if not claimed:
            return SignatureResult.rejected("missing signature")

        expected = generate_signature(fields, self.passphrase)
        if not hmac.compare_digest(expected, claimed.strip().lower()):
            logger.warning(
                "verifier.payfast.signature_mismatch",
                payment_id=payment_id,
                signature=signature_prefix(claimed),
            )
            return SignatureResult.rejected("invalid signature")

        # --- Step 3: Normalize ---
        raw_status = fields.get("payment_status", "").strip().upper()
        outcome = _STATUS_MAP.get(raw_status)
        if outcome is None:
            return SignatureResult.rejected("unrecognized status")

        if not payment_id:
            return SignatureResult.rejected("missing m_payment_id")

        event = ProviderEvent(
            provider=Provider.PAYFAST,
            payment_id=payment_id,
            transaction_id=fields.get("pf_payment_id") or None,
            application_id=fields.get("custom_str1") or None,
            outcome=outcome,
            raw_status=raw_status,
            gross_amount=_parse_amount(fields.get("amount_gross")),
            fee_amount=_parse_amount(fields.get("amount_fee")),
            net_amount=_parse_amount(fields.get("amount_net")),
        )
        return SignatureResult(valid=True, event=event)
