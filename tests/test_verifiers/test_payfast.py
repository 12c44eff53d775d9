"""Unit tests for the PayFast ITN verifier."""

from __future__ import annotations

import hashlib
from decimal import Decimal

import pytest

from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.verifier_protocol import SignatureRequest
from gig_escrow.verifiers.payfast import PayFastVerifier, generate_signature

PASSPHRASE = "jt7NOE43FZPn"
PAYFAST_IP = "41.74.179.194"


def _itn(**overrides: str) -> dict[str, str]:
    fields = {
        "m_payment_id": "pay-123",
        "pf_payment_id": "1089250",
        "payment_status": "COMPLETE",
        "item_name": "Fix a leaking tap",
        "amount_gross": "1050.00",
        "amount_fee": "-24.15",
        "amount_net": "1025.85",
        "custom_str1": "0b0f8a43-1111-4c52-9d6a-2f0f6c1f1d10",
    }
    fields.update(overrides)
    return fields


def _signed(fields: dict[str, str], passphrase: str = PASSPHRASE) -> dict[str, str]:
    return {**fields, "signature": generate_signature(fields, passphrase)}


def _request(fields: dict[str, str], source_ip: str | None = PAYFAST_IP) -> SignatureRequest:
    return SignatureRequest(
        provider=Provider.PAYFAST,
        form_fields=fields,
        source_ip=source_ip,
    )


class TestGenerateSignature:
    def test_fields_are_sorted_and_blank_values_skipped(self) -> None:
        a = generate_signature({"b": "2", "a": "1", "c": ""})
        b = generate_signature({"a": "1", "b": "2"})
        assert a == b

    def test_signature_field_is_excluded(self) -> None:
        fields = {"a": "1"}
        assert generate_signature({**fields, "signature": "x"}) == generate_signature(fields)

    def test_passphrase_changes_signature(self) -> None:
        fields = _itn()
        assert generate_signature(fields, PASSPHRASE) != generate_signature(fields)

    def test_values_are_trimmed(self) -> None:
        assert generate_signature({"a": " 1 "}) == generate_signature({"a": "1"})

    def test_matches_md5_of_query_string(self) -> None:
        expected = hashlib.md5(b"a=1&b=2&passphrase=secret").hexdigest()
        assert generate_signature({"b": "2", "a": "1"}, "secret") == expected


class TestPayFastVerifier:
    def test_valid_complete_itn(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE, sandbox=False)
        result = verifier.verify(_request(_signed(_itn())))

        assert result.valid is True
        event = result.event
        assert event.provider == Provider.PAYFAST
        assert event.payment_id == "pay-123"
        assert event.transaction_id == "1089250"
        assert event.application_id == "0b0f8a43-1111-4c52-9d6a-2f0f6c1f1d10"
        assert event.outcome == ProviderOutcome.SUCCEEDED
        assert event.gross_amount == Decimal("1050.00")
        assert event.fee_amount == Decimal("-24.15")
        assert event.net_amount == Decimal("1025.85")

    @pytest.mark.parametrize(
        ("status", "outcome"),
        [
            ("FAILED", ProviderOutcome.FAILED),
            ("CANCELLED", ProviderOutcome.CANCELLED),
            ("PENDING", ProviderOutcome.PENDING),
        ],
    )
    def test_status_mapping(self, status: str, outcome: ProviderOutcome) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE)
        result = verifier.verify(_request(_signed(_itn(payment_status=status))))
        assert result.valid is True
        assert result.event.outcome == outcome

    def test_missing_signature(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE)
        result = verifier.verify(_request(_itn()))
        assert result.valid is False
        assert result.reason == "missing signature"

    def test_tampered_amount(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE)
        fields = _signed(_itn())
        fields["amount_gross"] = "1.00"
        result = verifier.verify(_request(fields))
        assert result.valid is False
        assert result.reason == "invalid signature"
        assert result.event is None

    def test_wrong_passphrase(self) -> None:
        verifier = PayFastVerifier(passphrase="another")
        result = verifier.verify(_request(_signed(_itn())))
        assert result.reason == "invalid signature"

    def test_signature_from_header_is_accepted(self) -> None:
        fields = _itn()
        request = SignatureRequest(
            provider=Provider.PAYFAST,
            form_fields=fields,
            signature=generate_signature(fields, PASSPHRASE).upper(),
        )
        result = PayFastVerifier(passphrase=PASSPHRASE).verify(request)
        assert result.valid is True

    def test_unrecognized_status(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE)
        result = verifier.verify(_request(_signed(_itn(payment_status="REFUNDED"))))
        assert result.valid is False
        assert result.reason == "unrecognized status"

    def test_missing_payment_id(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE)
        fields = _itn()
        del fields["m_payment_id"]
        result = verifier.verify(_request(_signed(fields)))
        assert result.valid is False
        assert result.reason == "missing m_payment_id"

    def test_live_mode_rejects_unknown_ip(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE, sandbox=False)
        result = verifier.verify(_request(_signed(_itn()), source_ip="203.0.113.9"))
        assert result.valid is False
        assert "Invalid source IP" in result.reason

    def test_live_mode_rejects_missing_ip(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE, sandbox=False)
        result = verifier.verify(_request(_signed(_itn()), source_ip=None))
        assert result.valid is False

    def test_sandbox_skips_ip_check(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE, sandbox=True)
        result = verifier.verify(_request(_signed(_itn()), source_ip="203.0.113.9"))
        assert result.valid is True

    def test_unparseable_amount_becomes_none(self) -> None:
        verifier = PayFastVerifier(passphrase=PASSPHRASE)
        result = verifier.verify(_request(_signed(_itn(amount_gross="abc"))))
        assert result.valid is True
        assert result.event.gross_amount is None
