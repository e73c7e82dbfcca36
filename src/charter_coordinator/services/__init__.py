"""Application services; use case orchestration."""

from charter_coordinator.services.booking_service import BookingService
from charter_coordinator.services.contract_service import ContractService
from charter_coordinator.services.escrow_service import EscrowService
from charter_coordinator.services.tracking_poller import PollSummary, TrackingPoller
from charter_coordinator.services.tracking_service import TrackingService
from charter_coordinator.services.webhook_gateway import WebhookGateway, WebhookResult

__all__ = [
    "BookingService",
    "ContractService",
    "EscrowService",
    "PollSummary",
    "TrackingPoller",
    "TrackingService",
    "WebhookGateway",
    "WebhookResult",
]
