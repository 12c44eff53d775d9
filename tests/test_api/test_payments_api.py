"""HTTP tests for provider webhooks, payment intents and client verify."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.exceptions import ProviderLookupError
from gig_escrow.domain.verifier_protocol import ProviderEvent
from gig_escrow.verifiers.payfast import generate_signature
from gig_escrow.verifiers.paystack import compute_signature as paystack_signature
from gig_escrow.verifiers.tradesafe import compute_signature as tradesafe_signature

API = "/api/v1/payments"
PAYFAST_PASSPHRASE = "jt7NOE43FZPn"


class ConfirmingLookup:
    """Provider status client answering from memory."""

    def __init__(self, event: ProviderEvent | None = None, error: Exception | None = None) -> None:
        self.event = event
        self.error = error
        self.asked: list[str] = []

    async def lookup(self, payment_id: str, transaction_id: str | None = None) -> ProviderEvent | None:
        self.asked.append(payment_id)
        if self.error is not None:
            raise self.error
        return self.event


def _itn(deal, **overrides) -> dict[str, str]:
    fields = {
        "m_payment_id": deal.payment_id,
        "pf_payment_id": "1089250",
        "payment_status": "COMPLETE",
        "amount_gross": str(deal.amount),
        "custom_str1": str(deal.application_id),
    }
    fields.update(overrides)
    fields["signature"] = generate_signature(fields, PAYFAST_PASSPHRASE)
    return fields


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_payfast_itn_funds_escrow(self, client, market) -> None:
        deal = await market.with_intent()

        response = await client.post(f"{API}/payfast/itn", data=_itn(deal))

        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": True}
        application = await market.application(deal.application_id)
        assert application.status == "funded"
        assert application.payment_status == "in_escrow"

    @pytest.mark.asyncio
    async def test_duplicate_itn_is_acknowledged(self, client, market) -> None:
        deal = await market.with_intent()
        fields = _itn(deal)

        first = await client.post(f"{API}/payfast/itn", data=fields)
        second = await client.post(f"{API}/payfast/itn", data=fields)

        assert first.status_code == second.status_code == 200
        application = await market.application(deal.application_id)
        assert application.status == "funded"

    @pytest.mark.asyncio
    async def test_forged_itn_acknowledged_but_ignored(self, client, market) -> None:
        deal = await market.with_intent()
        fields = _itn(deal)
        fields["amount_gross"] = "1.00"

        response = await client.post(f"{API}/payfast/itn", data=fields)

        assert response.status_code == 200
        assert response.json()["processed"] is False
        application = await market.application(deal.application_id)
        assert application.status == "accepted"

    @pytest.mark.asyncio
    async def test_paystack_webhook(self, client, market) -> None:
        deal = await market.with_intent(provider=Provider.PAYSTACK)
        body = json.dumps(
            {
                "event": "charge.success",
                "data": {
                    "id": 302961,
                    "reference": deal.payment_id,
                    "status": "success",
                    "amount": int(deal.amount * 100),
                    "fees": 1500,
                    "metadata": {"application_id": str(deal.application_id)},
                },
            }
        ).encode()

        response = await client.post(
            f"{API}/paystack/webhook",
            content=body,
            headers={
                "content-type": "application/json",
                "x-paystack-signature": paystack_signature(body, "sk_test_5f2b"),
            },
        )

        assert response.json() == {"received": True, "processed": True}
        application = await market.application(deal.application_id)
        assert application.status == "funded"

    @pytest.mark.asyncio
    async def test_paystack_bad_signature(self, client) -> None:
        response = await client.post(
            f"{API}/paystack/webhook",
            content=b'{"event": "charge.success"}',
            headers={"x-paystack-signature": "deadbeef"},
        )
        assert response.status_code == 200
        assert response.json()["processed"] is False

    @pytest.mark.asyncio
    async def test_tradesafe_unknown_transaction(self, client) -> None:
        body = json.dumps({"transaction": {"id": "ts-unknown", "state": "FUNDS_RECEIVED"}}).encode()
        response = await client.post(
            f"{API}/tradesafe/webhook",
            content=body,
            headers={"x-tradesafe-signature": tradesafe_signature(body, "ts-client-secret")},
        )
        assert response.status_code == 200
        assert response.json()["processed"] is True


class TestIntentsAndVerify:
    @pytest.mark.asyncio
    async def test_create_intent(self, client, market) -> None:
        deal = await market.accepted()
        response = await client.post(
            f"{API}/intents",
            json={"application_id": str(deal.application_id), "provider": "payfast"},
            headers={"X-User-Id": deal.employer_id},
        )
        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert response.json()["payment_id"].startswith("gig_")

    @pytest.mark.asyncio
    async def test_create_intent_for_pending_application(self, client, market) -> None:
        deal = await market.pending()
        response = await client.post(
            f"{API}/intents",
            json={"application_id": str(deal.application_id), "provider": "payfast"},
            headers={"X-User-Id": deal.employer_id},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "PAYMENT_ERROR"

    @pytest.mark.asyncio
    async def test_sandbox_verify_funds(self, client, market) -> None:
        deal = await market.with_intent()
        response = await client.post(
            f"{API}/payfast/verify",
            json={"payment_id": deal.payment_id},
            headers={"X-User-Id": deal.employer_id},
        )
        assert response.json() == {"payment_id": deal.payment_id, "outcome": "funded"}

        again = await client.post(
            f"{API}/payfast/verify",
            json={"payment_id": deal.payment_id},
            headers={"X-User-Id": deal.employer_id},
        )
        assert again.json()["outcome"] == "duplicate"

    @pytest.mark.asyncio
    async def test_live_verify_waits_for_webhook(self, client, market, api_settings) -> None:
        api_settings.payfast_sandbox = False
        deal = await market.with_intent()

        response = await client.post(
            f"{API}/payfast/verify",
            json={"payment_id": deal.payment_id},
            headers={"X-User-Id": deal.employer_id},
        )

        assert response.json()["outcome"] == "pending"
        application = await market.application(deal.application_id)
        assert application.status == "accepted"

    @pytest.mark.asyncio
    async def test_verify_unknown_payment(self, client) -> None:
        response = await client.post(
            f"{API}/payfast/verify",
            json={"payment_id": "gig_missing"},
            headers={"X-User-Id": "employer-1"},
        )
        assert response.status_code == 404
        assert response.json()["error"] == "PAYMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_paystack_verify_asks_provider(self, client, market) -> None:
        deal = await market.with_intent(provider=Provider.PAYSTACK)
        lookup = ConfirmingLookup(
            ProviderEvent(
                provider=Provider.PAYSTACK,
                payment_id=deal.payment_id,
                transaction_id="302961",
                application_id=str(deal.application_id),
                outcome=ProviderOutcome.SUCCEEDED,
                raw_status="verify:success",
                gross_amount=deal.amount,
            )
        )

        with patch("gig_escrow.api.deps.build_status_lookup", return_value=lookup):
            response = await client.post(
                f"{API}/paystack/verify",
                json={"payment_id": deal.payment_id, "reported_success": False},
                headers={"X-User-Id": deal.employer_id},
            )

        assert response.json() == {"payment_id": deal.payment_id, "outcome": "funded"}
        assert lookup.asked == [deal.payment_id]
        application = await market.application(deal.application_id)
        assert application.status == "funded"

    @pytest.mark.asyncio
    async def test_paystack_verify_when_provider_unreachable(self, client, market) -> None:
        deal = await market.with_intent(provider=Provider.PAYSTACK)
        lookup = ConfirmingLookup(error=ProviderLookupError("paystack", "timed out"))

        with patch("gig_escrow.api.deps.build_status_lookup", return_value=lookup):
            response = await client.post(
                f"{API}/paystack/verify",
                json={"payment_id": deal.payment_id},
                headers={"X-User-Id": deal.employer_id},
            )

        assert response.status_code == 200
        assert response.json()["outcome"] == "pending"


class TestProviderTransactionRoutes:
    @pytest.mark.asyncio
    async def test_tradesafe_checkout_funded_by_webhook(self, client, market) -> None:
        deal = await market.accepted()
        created = await client.post(
            f"{API}/intents",
            json={
                "application_id": str(deal.application_id),
                "provider": "tradesafe",
                "provider_transaction_id": "ts-31337",
            },
            headers={"X-User-Id": deal.employer_id},
        )
        assert created.status_code == 201
        assert created.json()["provider_transaction_id"] == "ts-31337"

        body = json.dumps({"transaction": {"id": "ts-31337", "state": "FUNDS_RECEIVED"}}).encode()
        response = await client.post(
            f"{API}/tradesafe/webhook",
            content=body,
            headers={"x-tradesafe-signature": tradesafe_signature(body, "ts-client-secret")},
        )

        assert response.json() == {"received": True, "processed": True}
        application = await market.application(deal.application_id)
        assert application.status == "funded"
        assert application.payment_id == created.json()["payment_id"]

    @pytest.mark.asyncio
    async def test_attach_transaction_later(self, client, market) -> None:
        deal = await market.with_intent(provider=Provider.TRADESAFE)

        attached = await client.post(
            f"{API}/intents/{deal.payment_id}/transaction",
            json={"transaction_id": "ts-4242"},
            headers={"X-User-Id": deal.employer_id},
        )
        assert attached.status_code == 200
        assert attached.json()["provider_transaction_id"] == "ts-4242"

        body = json.dumps({"transaction": {"id": "ts-4242", "state": "FUNDS_DEPOSITED"}}).encode()
        await client.post(
            f"{API}/tradesafe/webhook",
            content=body,
            headers={"x-tradesafe-signature": tradesafe_signature(body, "ts-client-secret")},
        )

        application = await market.application(deal.application_id)
        assert application.status == "funded"

    @pytest.mark.asyncio
    async def test_attach_by_other_user(self, client, market) -> None:
        deal = await market.with_intent(provider=Provider.TRADESAFE)
        response = await client.post(
            f"{API}/intents/{deal.payment_id}/transaction",
            json={"transaction_id": "ts-4242"},
            headers={"X-User-Id": deal.worker_id},
        )
        assert response.status_code == 403
        assert response.json()["error"] == "UNAUTHORIZED_ACTOR"

    @pytest.mark.asyncio
    async def test_attach_unknown_payment(self, client) -> None:
        response = await client.post(
            f"{API}/intents/gig_missing/transaction",
            json={"transaction_id": "ts-4242"},
            headers={"X-User-Id": "employer-1"},
        )
        assert response.status_code == 404


class TestMalformedDeliveries:
    @pytest.mark.asyncio
    async def test_signed_paystack_body_with_scalar_data(self, client) -> None:
        body = b'{"event": "charge.success", "data": "oops"}'
        response = await client.post(
            f"{API}/paystack/webhook",
            content=body,
            headers={"x-paystack-signature": paystack_signature(body, "sk_test_5f2b")},
        )
        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": False}

    @pytest.mark.asyncio
    async def test_signed_tradesafe_body_with_scalar_transaction(self, client) -> None:
        body = b'{"transaction": "ts-1", "state": "FUNDS_RECEIVED"}'
        response = await client.post(
            f"{API}/tradesafe/webhook",
            content=body,
            headers={"x-tradesafe-signature": tradesafe_signature(body, "ts-client-secret")},
        )
        assert response.status_code == 200
        assert response.json()["processed"] is False

    @pytest.mark.asyncio
    async def test_verifier_crash_still_acknowledged(self, client, market) -> None:
        deal = await market.with_intent()
        with patch(
            "gig_escrow.api.routes.payments.SignatureVerifierFactory.create",
            side_effect=RuntimeError("boom"),
        ):
            response = await client.post(f"{API}/payfast/itn", data=_itn(deal))

        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": False}
        application = await market.application(deal.application_id)
        assert application.status == "accepted"
