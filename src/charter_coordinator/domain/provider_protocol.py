"""Payment Provider Adapter Protocol.

Defines the interface every payment provider adapter must implement. This is
a Protocol (structural subtyping) so concrete adapters don't inherit from a
base class, they just need to match the shape.

Adapters turn a provider's signed webhook into a normalized PaymentConfirmed
and build the checkout payload whose metadata the webhook later echoes back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from charter_coordinator.domain.enums import PaymentProvider
from charter_coordinator.domain.exceptions import ValidationError


def parse_escrow_id(raw: Any) -> UUID:
    """Parse the escrow id echoed back in a provider's metadata."""
    try:
        return UUID(str(raw))
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"Webhook payload carries an invalid escrow id: {raw!r}",
            field="escrowId",
        ) from exc


@dataclass(frozen=True)
class PaymentConfirmed:
    """A provider-agnostic "this escrow has been paid" event.

    Attributes:
        escrow_id: Escrow the payment was made for (from checkout metadata).
        provider: Which provider confirmed the charge.
        provider_reference: The provider's own transaction reference.
        event_name: Raw provider event name, kept for the escrow log.
    """

    escrow_id: UUID
    provider: PaymentProvider
    provider_reference: str
    event_name: str = ""


@dataclass(frozen=True)
class CheckoutRequest:
    """Input for building a provider checkout session."""

    escrow_id: str
    booking_id: str
    user_id: str
    email: str
    amount: Decimal
    currency: str
    reference: str
    callback_url: str
    description: str = "Vessel Charter Payment"
    extra: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class PaymentProviderAdapter(Protocol):
    """Protocol that every payment provider adapter must satisfy.

    Concrete implementations:
        - providers/paystack.py     (HMAC-SHA512 signature header)
        - providers/flutterwave.py  (SHA-256 hash header)
    """

    provider: PaymentProvider
    signature_header: str

    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        """Constant-time check of the delivery's signature header."""
        ...

    def normalize(self, payload: dict[str, Any]) -> PaymentConfirmed | None:
        """Map a verified payload to PaymentConfirmed, or None to ignore it.

        Raises:
            ValidationError: If a recognized event carries an unparseable escrow id.
        """
        ...

    def build_checkout(self, request: CheckoutRequest) -> dict[str, Any]:
        """Return the provider-specific checkout initialization payload."""
        ...
