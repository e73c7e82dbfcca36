"""Webhook Ingestion Gateway.

Turns an untrusted, possibly replayed payment-provider delivery into at most
one escrow state change:

    1. Identify the provider from which signature header is present.
    2. Verify the signature in constant time over the raw body.
    3. Normalize the payload through the provider's adapter.
    4. Apply it through the Escrow Ledger, which is idempotent.

Deliveries are at-least-once, so replays are expected and answered as
DUPLICATE. An escrow that is not (yet) visible raises a transient error so
the provider redelivers later.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

from charter_coordinator.domain.enums import PaymentProvider, WebhookOutcome
from charter_coordinator.domain.exceptions import (
    SignatureVerificationError,
    ValidationError,
)
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Mapping

    from charter_coordinator.providers import ProviderRegistry
    from charter_coordinator.services.escrow_service import EscrowService

logger = get_logger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    outcome: WebhookOutcome
    provider: PaymentProvider
    escrow_id: uuid.UUID | None = None


class WebhookGateway:
    def __init__(self, providers: ProviderRegistry, escrow_service: EscrowService) -> None:
        self._providers = providers
        self._escrow_service = escrow_service

    async def ingest(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        """Verify, normalize and apply one delivery.

        Raises:
            SignatureVerificationError: Unknown/ambiguous provider or bad signature.
            ValidationError: Signed body is not JSON or carries a bad escrow id.
            EscrowNotYetVisibleError: The referenced escrow does not exist yet.
        """
        adapter, signature = self._providers.identify(headers)
        if not adapter.verify_signature(raw_body, signature):
            logger.warning(
                "webhook.signature_invalid",
                provider=adapter.provider.value,
                body_size=len(raw_body),
            )
            raise SignatureVerificationError()

        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Webhook body is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")

        confirmed = adapter.normalize(payload)
        if confirmed is None:
            logger.info(
                "webhook.ignored",
                provider=adapter.provider.value,
                provider_event=payload.get("event"),
            )
            return WebhookResult(outcome=WebhookOutcome.IGNORED, provider=adapter.provider)

        _, applied = await self._escrow_service.confirm_payment(confirmed)
        outcome = WebhookOutcome.APPLIED if applied else WebhookOutcome.DUPLICATE
        logger.info(
            f"webhook.{outcome.value}",
            provider=adapter.provider.value,
            escrow_id=str(confirmed.escrow_id),
            reference=confirmed.provider_reference,
        )
        return WebhookResult(
            outcome=outcome, provider=adapter.provider, escrow_id=confirmed.escrow_id
        )
