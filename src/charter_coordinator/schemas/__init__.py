"""Pydantic API schemas."""

from charter_coordinator.schemas.booking import (
    BookingResponse,
    BookingTerms,
    CounterBookingRequest,
    CreateBookingRequest,
    PricingOverride,
)
from charter_coordinator.schemas.common import ErrorResponse, HealthResponse
from charter_coordinator.schemas.contract import (
    ContractResponse,
    SignContractRequest,
    VerifySignatureRequest,
    VerifySignatureResponse,
)
from charter_coordinator.schemas.escrow import (
    CheckoutRequestBody,
    CheckoutResponse,
    EscrowEventResponse,
    EscrowResponse,
    RaiseDisputeRequest,
    ReleaseEscrowRequest,
    WebhookAck,
)
from charter_coordinator.schemas.tracking import (
    LatestPositionResponse,
    ManualTrackingRequest,
    PollSummaryResponse,
    RouteResponse,
    TrackingEventListResponse,
    TrackingEventResponse,
)

__all__ = [
    "BookingResponse",
    "BookingTerms",
    "CheckoutRequestBody",
    "CheckoutResponse",
    "ContractResponse",
    "CounterBookingRequest",
    "CreateBookingRequest",
    "ErrorResponse",
    "EscrowEventResponse",
    "EscrowResponse",
    "HealthResponse",
    "LatestPositionResponse",
    "ManualTrackingRequest",
    "PollSummaryResponse",
    "PricingOverride",
    "RaiseDisputeRequest",
    "ReleaseEscrowRequest",
    "RouteResponse",
    "SignContractRequest",
    "TrackingEventListResponse",
    "TrackingEventResponse",
    "VerifySignatureRequest",
    "VerifySignatureResponse",
    "WebhookAck",
]
