"""Tests for the Paystack and TradeSafe status clients, against a mock transport."""

from __future__ import annotations

import json
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from gig_escrow.config import Settings
from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.exceptions import ProviderLookupError
from gig_escrow.domain.verifier_protocol import PaymentStatusLookup
from gig_escrow.infrastructure.provider_clients import (
    PaystackStatusClient,
    TradeSafeStatusClient,
    build_status_lookup,
)

PAYSTACK_URL = "https://api.paystack.test"
TRADESAFE_AUTH_URL = "https://auth.tradesafe.test/oauth/token"
TRADESAFE_API_URL = "https://api.tradesafe.test/graphql"


def _paystack(handler) -> PaystackStatusClient:
    return PaystackStatusClient(
        secret_key="sk_test_5f2b",
        base_url=PAYSTACK_URL,
        transport=httpx.MockTransport(handler),
    )


def _tradesafe(handler) -> TradeSafeStatusClient:
    return TradeSafeStatusClient(
        client_id="ts-client",
        client_secret="ts-client-secret",
        api_url=TRADESAFE_API_URL,
        auth_url=TRADESAFE_AUTH_URL,
        transport=httpx.MockTransport(handler),
    )


def _paystack_verify(status: str = "success", **data) -> dict:
    return {
        "status": True,
        "message": "Verification successful",
        "data": {
            "id": 302961,
            "reference": "gig_ab12cd34_0011",
            "status": status,
            "amount": 100000,
            "fees": 1500,
            "metadata": {"application_id": "app-9"},
            **data,
        },
    }


class TestPaystackStatusClient:
    @pytest.mark.asyncio
    async def test_successful_charge(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_paystack_verify())

        event = await _paystack(handler).lookup("gig_ab12cd34_0011")

        assert seen[0].method == "GET"
        assert seen[0].url.path == "/transaction/verify/gig_ab12cd34_0011"
        assert seen[0].headers["Authorization"] == "Bearer sk_test_5f2b"
        assert event.provider == Provider.PAYSTACK
        assert event.outcome == ProviderOutcome.SUCCEEDED
        assert event.payment_id == "gig_ab12cd34_0011"
        assert event.transaction_id == "302961"
        assert event.application_id == "app-9"
        assert event.gross_amount == Decimal("1000.00")
        assert event.fee_amount == Decimal("15.00")
        assert event.net_amount == Decimal("985.00")
        assert event.raw_status == "verify:success"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "outcome"),
        [
            ("failed", ProviderOutcome.FAILED),
            ("abandoned", ProviderOutcome.PENDING),
            ("ongoing", ProviderOutcome.PENDING),
        ],
    )
    async def test_other_statuses(self, status: str, outcome: ProviderOutcome) -> None:
        client = _paystack(lambda request: httpx.Response(200, json=_paystack_verify(status)))
        event = await client.lookup("gig_ab12cd34_0011")
        assert event.outcome == outcome

    @pytest.mark.asyncio
    async def test_unknown_reference(self) -> None:
        client = _paystack(
            lambda request: httpx.Response(
                400, json={"status": False, "message": "Transaction reference not found"}
            )
        )
        assert await client.lookup("gig_nope") is None

    @pytest.mark.asyncio
    async def test_status_false_body(self) -> None:
        client = _paystack(lambda request: httpx.Response(200, json={"status": False, "data": None}))
        assert await client.lookup("gig_nope") is None

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        client = _paystack(lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(ProviderLookupError, match="HTTP 502"):
            await client.lookup("gig_ab12cd34_0011")

    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderLookupError, match="paystack"):
            await _paystack(handler).lookup("gig_ab12cd34_0011")

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        client = _paystack(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderLookupError, match="not JSON"):
            await client.lookup("gig_ab12cd34_0011")


class TestTradeSafeStatusClient:
    @pytest.mark.asyncio
    async def test_authenticates_then_queries_transaction(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if str(request.url) == TRADESAFE_AUTH_URL:
                return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
            return httpx.Response(
                200, json={"data": {"transaction": {"id": "ts-555", "state": "FUNDS_RECEIVED"}}}
            )

        event = await _tradesafe(handler).lookup("gig_ab12cd34_0011", "ts-555")

        auth, query = seen
        form = parse_qs(auth.content.decode())
        assert form["grant_type"] == ["client_credentials"]
        assert form["client_id"] == ["ts-client"]
        assert query.headers["Authorization"] == "Bearer tok-1"
        assert json.loads(query.content)["variables"] == {"id": "ts-555"}

        assert event.provider == Provider.TRADESAFE
        assert event.outcome == ProviderOutcome.SUCCEEDED
        assert event.payment_id == "gig_ab12cd34_0011"
        assert event.transaction_id == "ts-555"
        assert event.raw_status == "FUNDS_RECEIVED"

    @pytest.mark.asyncio
    async def test_without_transaction_id_nothing_is_asked(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await _tradesafe(handler).lookup("gig_ab12cd34_0011", None) is None

    @pytest.mark.asyncio
    async def test_unmapped_state_is_pending(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == TRADESAFE_AUTH_URL:
                return httpx.Response(200, json={"access_token": "tok-1"})
            return httpx.Response(
                200, json={"data": {"transaction": {"id": "ts-555", "state": "CREATED"}}}
            )

        event = await _tradesafe(handler).lookup("gig_ab12cd34_0011", "ts-555")
        assert event.outcome == ProviderOutcome.PENDING

    @pytest.mark.asyncio
    async def test_unknown_transaction(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == TRADESAFE_AUTH_URL:
                return httpx.Response(200, json={"access_token": "tok-1"})
            return httpx.Response(200, json={"data": {"transaction": None}})

        assert await _tradesafe(handler).lookup("gig_ab12cd34_0011", "ts-404") is None

    @pytest.mark.asyncio
    async def test_graphql_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == TRADESAFE_AUTH_URL:
                return httpx.Response(200, json={"access_token": "tok-1"})
            return httpx.Response(200, json={"errors": [{"message": "Unauthenticated."}]})

        with pytest.raises(ProviderLookupError, match="Unauthenticated"):
            await _tradesafe(handler).lookup("gig_ab12cd34_0011", "ts-555")

    @pytest.mark.asyncio
    async def test_rejected_credentials(self) -> None:
        client = _tradesafe(lambda request: httpx.Response(401, json={"error": "invalid_client"}))
        with pytest.raises(ProviderLookupError, match="authentication failed"):
            await client.lookup("gig_ab12cd34_0011", "ts-555")


class TestBuildStatusLookup:
    def test_paystack_with_secret(self) -> None:
        settings = Settings(_env_file=None, paystack_secret_key="sk_test_5f2b")
        lookup = build_status_lookup(Provider.PAYSTACK, settings)
        assert isinstance(lookup, PaystackStatusClient)
        assert isinstance(lookup, PaymentStatusLookup)

    def test_tradesafe_needs_client_id_and_secret(self) -> None:
        partial = Settings(_env_file=None, tradesafe_client_secret="ts-client-secret")
        assert build_status_lookup(Provider.TRADESAFE, partial) is None

        full = Settings(
            _env_file=None,
            tradesafe_client_id="ts-client",
            tradesafe_client_secret="ts-client-secret",
            tradesafe_sandbox=True,
        )
        lookup = build_status_lookup(Provider.TRADESAFE, full)
        assert isinstance(lookup, TradeSafeStatusClient)
        assert lookup.api_url == full.tradesafe_api_url

    def test_payfast_has_no_lookup(self) -> None:
        settings = Settings(_env_file=None, payfast_passphrase="jt7NOE43FZPn")
        assert build_status_lookup(Provider.PAYFAST, settings) is None

    def test_unconfigured_paystack(self) -> None:
        assert build_status_lookup(Provider.PAYSTACK, Settings(_env_file=None)) is None
