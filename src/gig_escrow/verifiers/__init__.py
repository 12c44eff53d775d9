"""Payment-provider signature verifiers and factory.

Three verifiers:
    - PayFastVerifier:    Signed form-post ITN (MD5, source IP allow-list)
    - PaystackVerifier:   HMAC-SHA512 over the raw JSON body
    - TradeSafeVerifier:  HMAC-SHA256 over the raw JSON body

The SignatureVerifierFactory creates the correct verifier for a provider,
wired with that provider's credentials from Settings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gig_escrow.domain.enums import Provider
from gig_escrow.domain.verifier_protocol import (
    ProviderEvent,
    SignatureRequest,
    SignatureResult,
    SignatureVerifier,
)
from gig_escrow.verifiers.payfast import PayFastVerifier
from gig_escrow.verifiers.paystack import PaystackVerifier
from gig_escrow.verifiers.tradesafe import TradeSafeVerifier

if TYPE_CHECKING:
    from gig_escrow.config import Settings


class SignatureVerifierFactory:
    """Factory that creates the verifier for a payment provider.

    Usage:
        verifier = SignatureVerifierFactory.create("paystack", get_settings())
        result = verifier.verify(request)
    """

    _registry: dict[str, type] = {
        Provider.PAYFAST.value: PayFastVerifier,
        Provider.PAYSTACK.value: PaystackVerifier,
        Provider.TRADESAFE.value: TradeSafeVerifier,
    }

    @classmethod
    def create(cls, provider: str, settings: Settings) -> SignatureVerifier:
        """Create a verifier instance configured from settings.

        Raises:
            ValueError: If the provider is unknown.
        """
        if provider not in cls._registry:
            raise ValueError(
                f"Unknown payment provider: '{provider}'. "
                f"Valid providers: {cls.get_supported_providers()}"
            )

        if provider == Provider.PAYFAST:
            return PayFastVerifier(
                passphrase=settings.payfast_passphrase,
                sandbox=settings.payfast_sandbox,
            )
        if provider == Provider.PAYSTACK:
            return PaystackVerifier(secret_key=settings.paystack_secret_key)
        return TradeSafeVerifier(client_secret=settings.tradesafe_client_secret)

    @classmethod
    def get_supported_providers(cls) -> list[str]:
        """Return the list of supported provider strings."""
        return list(cls._registry.keys())


__all__ = [
    "PayFastVerifier",
    "PaystackVerifier",
    "ProviderEvent",
    "SignatureRequest",
    "SignatureResult",
    "SignatureVerifier",
    "SignatureVerifierFactory",
    "TradeSafeVerifier",
]
