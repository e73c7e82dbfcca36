"""Paystack adapter.

Paystack signs every webhook with an HMAC-SHA512 of the raw request body,
keyed with the account's secret key, and sends the hex digest in the
``x-paystack-signature`` header. Only ``charge.success`` funds an escrow.

Amounts are sent to Paystack in minor units (kobo for NGN, cents for USD).
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from charter_coordinator.domain.enums import PaymentProvider
from charter_coordinator.domain.exceptions import ValidationError
from charter_coordinator.domain.provider_protocol import (
    CheckoutRequest,
    PaymentConfirmed,
    parse_escrow_id,
)
from charter_coordinator.logging_config import get_logger

logger = get_logger(__name__)

CHARGE_SUCCESS = "charge.success"


class PaystackAdapter:
    """Adapter for Paystack webhooks and checkout initialization."""

    provider = PaymentProvider.PAYSTACK
    signature_header = "x-paystack-signature"

    def __init__(self, secret_key: str, public_url: str) -> None:
        self._secret_key = secret_key
        self._public_url = public_url.rstrip("/")

    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        if not self._secret_key or not signature:
            return False
        expected = hmac.new(
            self._secret_key.encode("utf-8"), raw_body, hashlib.sha512
        ).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())

    def normalize(self, payload: dict[str, Any]) -> PaymentConfirmed | None:
        event = payload.get("event")
        if event != CHARGE_SUCCESS:
            logger.debug("provider.paystack.event_ignored", paystack_event=event)
            return None

        data = payload.get("data") or {}
        metadata = data.get("metadata") or {}
        reference = data.get("reference")
        if not reference:
            raise ValidationError("Paystack charge is missing data.reference")

        return PaymentConfirmed(
            escrow_id=parse_escrow_id(metadata.get("escrowId")),
            provider=self.provider,
            provider_reference=str(reference),
            event_name=event,
        )

    def build_checkout(self, request: CheckoutRequest) -> dict[str, Any]:
        amount_minor = int(
            (request.amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )
        return {
            "email": request.email,
            "amount": amount_minor,
            "currency": request.currency,
            "reference": request.reference,
            "callback_url": f"{self._public_url}/api/payments/callback",
            "metadata": {
                "bookingId": request.booking_id,
                "escrowId": request.escrow_id,
                "userId": request.user_id,
                "cancel_action": (
                    f"{self._public_url}/operator/bookings/{request.booking_id}"
                ),
                **request.extra,
            },
        }
