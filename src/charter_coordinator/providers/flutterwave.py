"""Flutterwave adapter.

Flutterwave deliveries carry ``verif-hash``: the hex SHA-256 of the raw body
concatenated with the dashboard secret hash. A charge funds an escrow only
when the event is ``charge.completed`` *and* ``data.status`` is
``successful``; failed and pending charges arrive under the same event name.
"""

from __future__ import annotations

import hashlib
import hmac
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

CHARGE_COMPLETED = "charge.completed"


class FlutterwaveAdapter:
    """Adapter for Flutterwave webhooks and checkout initialization."""

    provider = PaymentProvider.FLUTTERWAVE
    signature_header = "verif-hash"

    def __init__(self, secret_hash: str, public_url: str) -> None:
        self._secret_hash = secret_hash
        self._public_url = public_url.rstrip("/")

    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        if not self._secret_hash or not signature:
            return False
        expected = hashlib.sha256(
            raw_body + self._secret_hash.encode("utf-8")
        ).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())

    def normalize(self, payload: dict[str, Any]) -> PaymentConfirmed | None:
        event = payload.get("event")
        data = payload.get("data") or {}
        if event != CHARGE_COMPLETED or data.get("status") != "successful":
            logger.debug(
                "provider.flutterwave.event_ignored",
                flutterwave_event=event,
                charge_status=data.get("status"),
            )
            return None

        meta = data.get("meta") or {}
        tx_ref = data.get("tx_ref")
        if not tx_ref:
            raise ValidationError("Flutterwave charge is missing data.tx_ref")

        return PaymentConfirmed(
            escrow_id=parse_escrow_id(meta.get("escrowId")),
            provider=self.provider,
            provider_reference=str(tx_ref),
            event_name=event,
        )

    def build_checkout(self, request: CheckoutRequest) -> dict[str, Any]:
        # major units, unlike Paystack
        return {
            "tx_ref": request.reference,
            "amount": str(request.amount),
            "currency": request.currency,
            "redirect_url": f"{self._public_url}/api/payments/callback",
            "customer": {"email": request.email},
            "customizations": {
                "title": "Charter Escrow Payment",
                "description": f"Payment for booking {request.booking_id}",
                "logo": f"{self._public_url}/logo.png",
            },
            "meta": {
                "bookingId": request.booking_id,
                "escrowId": request.escrow_id,
                "userId": request.user_id,
                **request.extra,
            },
        }
