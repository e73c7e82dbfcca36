"""Tests for the ProviderRegistry."""

from __future__ import annotations

import pytest

from charter_coordinator.config import PlatformConfig, Settings
from charter_coordinator.domain.enums import PaymentProvider
from charter_coordinator.domain.exceptions import (
    SignatureVerificationError,
    ValidationError,
)
from charter_coordinator.providers import ProviderRegistry


class TestIdentify:
    def test_paystack_header(self, providers: ProviderRegistry) -> None:
        adapter, signature = providers.identify({"X-Paystack-Signature": "abc"})
        assert adapter.provider == PaymentProvider.PAYSTACK
        assert signature == "abc"

    def test_flutterwave_header(self, providers: ProviderRegistry) -> None:
        adapter, signature = providers.identify({"verif-hash": "def"})
        assert adapter.provider == PaymentProvider.FLUTTERWAVE
        assert signature == "def"

    def test_no_header(self, providers: ProviderRegistry) -> None:
        with pytest.raises(SignatureVerificationError):
            providers.identify({"content-type": "application/json"})

    def test_both_headers_are_ambiguous(self, providers: ProviderRegistry) -> None:
        with pytest.raises(SignatureVerificationError, match="Ambiguous"):
            providers.identify({"x-paystack-signature": "a", "verif-hash": "b"})

    def test_empty_header_value_does_not_count(self, providers: ProviderRegistry) -> None:
        adapter, _ = providers.identify({"x-paystack-signature": "", "verif-hash": "b"})
        assert adapter.provider == PaymentProvider.FLUTTERWAVE


class TestFromSettings:
    def test_disabled_provider_is_not_registered(self) -> None:
        settings = Settings(paystack_secret_key="sk", flutterwave_secret_hash="fh")
        platform = PlatformConfig(version="t", flutterwave_enabled=False)
        registry = ProviderRegistry.from_settings(settings, platform)

        assert registry.get_supported_providers() == ["PAYSTACK"]
        with pytest.raises(SignatureVerificationError):
            registry.identify({"verif-hash": "b"})

    def test_get_unknown_provider(self, providers: ProviderRegistry) -> None:
        with pytest.raises(ValidationError) as exc_info:
            providers.get("STRIPE")
        assert exc_info.value.field == "provider"

    def test_get_by_value(self, providers: ProviderRegistry) -> None:
        assert providers.get("FLUTTERWAVE").provider == PaymentProvider.FLUTTERWAVE
