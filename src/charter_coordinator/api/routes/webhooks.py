"""Payment provider webhook endpoint.

Routes:
    POST   /api/v1/payments/webhook  Paystack and Flutterwave deliveries

The signature covers the exact bytes sent, so the handler reads the raw body
instead of letting FastAPI parse it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from charter_coordinator.api.deps import get_webhook_gateway
from charter_coordinator.logging_config import get_logger
from charter_coordinator.schemas.escrow import WebhookAck
from charter_coordinator.services.webhook_gateway import WebhookGateway

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Payment provider webhook",
    description=(
        "Verifies the provider signature and applies a payment confirmation "
        "at most once. Replays are acknowledged as duplicates."
    ),
)
async def payment_webhook(
    request: Request,
    gateway: WebhookGateway = Depends(get_webhook_gateway),
) -> WebhookAck:
    raw_body = await request.body()
    result = await gateway.ingest(raw_body, request.headers)
    return WebhookAck(
        outcome=result.outcome.value,
        provider=result.provider.value,
        escrow_id=result.escrow_id,
    )
