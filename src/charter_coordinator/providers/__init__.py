"""Payment provider adapters and registry.

Two adapters:
    - PaystackAdapter:     ``x-paystack-signature``, HMAC-SHA512
    - FlutterwaveAdapter:  ``verif-hash``, SHA-256 of body + secret hash

The ProviderRegistry maps each signature header to its adapter. A delivery is
attributed to a provider purely by which of the mutually exclusive headers it
carries. Providers switched off in the platform configuration are never
registered, so their header is treated as unknown.
"""

from __future__ import annotations

from collections.abc import Mapping

from charter_coordinator.config import PlatformConfig, Settings
from charter_coordinator.domain.enums import PaymentProvider
from charter_coordinator.domain.exceptions import (
    SignatureVerificationError,
    ValidationError,
)
from charter_coordinator.domain.provider_protocol import (
    CheckoutRequest,
    PaymentConfirmed,
    PaymentProviderAdapter,
)
from charter_coordinator.providers.flutterwave import FlutterwaveAdapter
from charter_coordinator.providers.paystack import PaystackAdapter


class ProviderRegistry:
    """Registry of enabled payment provider adapters.

    Usage:
        registry = ProviderRegistry.from_settings(settings, platform)
        adapter, signature = registry.identify(request.headers)
        adapter.verify_signature(raw_body, signature)
    """

    def __init__(self, adapters: list[PaymentProviderAdapter]) -> None:
        self._by_provider: dict[PaymentProvider, PaymentProviderAdapter] = {
            adapter.provider: adapter for adapter in adapters
        }

    @classmethod
    def from_settings(
        cls, settings: Settings, platform: PlatformConfig
    ) -> ProviderRegistry:
        adapters: list[PaymentProviderAdapter] = []
        if platform.paystack_enabled:
            adapters.append(
                PaystackAdapter(settings.paystack_secret_key, settings.app_public_url)
            )
        if platform.flutterwave_enabled:
            adapters.append(
                FlutterwaveAdapter(
                    settings.flutterwave_secret_hash, settings.app_public_url
                )
            )
        return cls(adapters)

    def get(self, provider: PaymentProvider | str) -> PaymentProviderAdapter:
        """Return the adapter for a provider name (used for checkout)."""
        try:
            adapter = self._by_provider.get(PaymentProvider(provider))
        except ValueError:
            adapter = None
        if adapter is None:
            raise ValidationError(
                f"Payment provider not available: {provider}. "
                f"Enabled providers: {self.get_supported_providers()}",
                field="provider",
            )
        return adapter

    def identify(self, headers: Mapping[str, str]) -> tuple[PaymentProviderAdapter, str]:
        """Attribute a delivery to exactly one provider by its signature header.

        Returns:
            The adapter and the signature value it must verify.

        Raises:
            SignatureVerificationError: If no registered header, or more than
                one, is present.
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        matches = [
            (adapter, lowered[adapter.signature_header])
            for adapter in self._by_provider.values()
            if lowered.get(adapter.signature_header)
        ]
        if not matches:
            raise SignatureVerificationError("No recognized signature header")
        if len(matches) > 1:
            raise SignatureVerificationError("Ambiguous signature headers")
        return matches[0]

    def get_supported_providers(self) -> list[str]:
        """Return the list of enabled provider names."""
        return [provider.value for provider in self._by_provider]


__all__ = [
    "CheckoutRequest",
    "FlutterwaveAdapter",
    "PaymentConfirmed",
    "PaymentProviderAdapter",
    "PaystackAdapter",
    "ProviderRegistry",
]
