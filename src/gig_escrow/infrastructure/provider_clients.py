"""Provider status clients — server-to-server payment lookups over httpx.

The client verify path asks the provider what happened to a payment instead
of trusting the browser redirect:
    - PaystackStatusClient:   GET /transaction/verify/{reference}
    - TradeSafeStatusClient:  OAuth client-credentials token, then the
                              GraphQL `transaction(id)` query

Both answer with a normalized ProviderEvent, so the reconciliation engine
treats a lookup exactly like a verified webhook. PayFast has no lookup here;
its ITN is the only authoritative signal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx

from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.exceptions import ProviderLookupError
from gig_escrow.domain.verifier_protocol import PaymentStatusLookup, ProviderEvent
from gig_escrow.logging_config import get_logger
from gig_escrow.verifiers.paystack import kobo_to_rand
from gig_escrow.verifiers.tradesafe import map_state

if TYPE_CHECKING:
    from gig_escrow.config import Settings

logger = get_logger(__name__)

# "abandoned" is also what Paystack reports for a checkout not paid yet
_PAYSTACK_STATUS: dict[str, ProviderOutcome] = {
    "success": ProviderOutcome.SUCCEEDED,
    "failed": ProviderOutcome.FAILED,
}

_TRANSACTION_QUERY = """
query transaction($id: ID!) {
  transaction(id: $id) {
    id
    state
  }
}
"""


def _json(response: httpx.Response, provider: str) -> dict:
    try:
        body = response.json()
    except ValueError as exc:
        raise ProviderLookupError(provider, "response is not JSON") from exc
    if not isinstance(body, dict):
        raise ProviderLookupError(provider, "unexpected response shape")
    return body


class PaystackStatusClient:
    """Looks up a Paystack transaction by our reference."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def lookup(self, payment_id: str, transaction_id: str | None = None) -> ProviderEvent | None:
        url = f"{self.base_url}/transaction/verify/{quote(payment_id, safe='')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    url, headers={"Authorization": f"Bearer {self.secret_key}"}
                )
        except httpx.HTTPError as exc:
            raise ProviderLookupError(Provider.PAYSTACK.value, str(exc)) from exc

        # Paystack answers an unknown reference with 400/404 and status=false
        if response.status_code in (400, 404):
            logger.info("provider.lookup_unknown", provider="paystack", payment_id=payment_id)
            return None
        if response.is_error:
            raise ProviderLookupError(Provider.PAYSTACK.value, f"HTTP {response.status_code}")

        body = _json(response, Provider.PAYSTACK.value)
        data = body.get("data")
        if not body.get("status") or not isinstance(data, dict):
            return None

        raw_status = str(data.get("status", ""))
        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        gross = kobo_to_rand(data.get("amount"))
        fee = kobo_to_rand(data.get("fees"))
        transaction = data.get("id")
        return ProviderEvent(
            provider=Provider.PAYSTACK,
            payment_id=str(data.get("reference") or payment_id),
            transaction_id=str(transaction) if transaction is not None else None,
            application_id=metadata.get("application_id"),
            outcome=_PAYSTACK_STATUS.get(raw_status, ProviderOutcome.PENDING),
            raw_status=f"verify:{raw_status}",
            gross_amount=gross,
            fee_amount=fee,
            net_amount=gross - fee if gross is not None and fee is not None else None,
        )


class TradeSafeStatusClient:
    """Looks up a TradeSafe transaction by its id through the GraphQL API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_url: str,
        auth_url: str = "https://auth.tradesafe.co.za/oauth/token",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_url = api_url
        self.auth_url = auth_url
        self.timeout = timeout
        self._transport = transport

    async def _authenticate(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            self.auth_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        if response.is_error:
            raise ProviderLookupError(
                Provider.TRADESAFE.value, f"authentication failed: HTTP {response.status_code}"
            )
        token = _json(response, Provider.TRADESAFE.value).get("access_token")
        if not token:
            raise ProviderLookupError(Provider.TRADESAFE.value, "no access token issued")
        return str(token)

    async def lookup(self, payment_id: str, transaction_id: str | None = None) -> ProviderEvent | None:
        if not transaction_id:
            # Nothing to ask TradeSafe until the checkout's transaction is attached
            return None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                token = await self._authenticate(client)
                response = await client.post(
                    self.api_url,
                    json={"query": _TRANSACTION_QUERY, "variables": {"id": transaction_id}},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            raise ProviderLookupError(Provider.TRADESAFE.value, str(exc)) from exc

        if response.is_error:
            raise ProviderLookupError(Provider.TRADESAFE.value, f"HTTP {response.status_code}")
        body = _json(response, Provider.TRADESAFE.value)
        if body.get("errors"):
            first = body["errors"][0] if isinstance(body["errors"], list) else body["errors"]
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise ProviderLookupError(Provider.TRADESAFE.value, f"GraphQL error: {message}")

        data = body.get("data") or {}
        transaction = data.get("transaction") if isinstance(data, dict) else None
        if not isinstance(transaction, dict):
            logger.info("provider.lookup_unknown", provider="tradesafe", transaction_id=transaction_id)
            return None

        state = str(transaction.get("state") or "").strip().upper()
        return ProviderEvent(
            provider=Provider.TRADESAFE,
            payment_id=payment_id,
            transaction_id=transaction_id,
            application_id=None,
            outcome=map_state(state) or ProviderOutcome.PENDING,
            raw_status=state,
        )


def build_status_lookup(provider: Provider, settings: Settings) -> PaymentStatusLookup | None:
    """The configured lookup for a provider, or None when it has none."""
    if provider == Provider.PAYSTACK and settings.paystack_secret_key:
        return PaystackStatusClient(
            secret_key=settings.paystack_secret_key,
            base_url=settings.paystack_api_url,
            timeout=settings.provider_http_timeout_seconds,
        )
    if provider == Provider.TRADESAFE and settings.tradesafe_client_id and settings.tradesafe_client_secret:
        return TradeSafeStatusClient(
            client_id=settings.tradesafe_client_id,
            client_secret=settings.tradesafe_client_secret,
            api_url=settings.tradesafe_api_url,
            auth_url=settings.tradesafe_auth_url,
            timeout=settings.provider_http_timeout_seconds,
        )
    return None
