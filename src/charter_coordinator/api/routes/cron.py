"""Scheduler trigger endpoints.

Routes:
    POST   /api/v1/cron/poll-ais  Run one tracking tick

An external scheduler calls this on a fixed interval with
``Authorization: Bearer <CRON_SECRET>``. Overlapping ticks are refused: the
Redis lock guards across processes, the poller's own lock within one.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header

from charter_coordinator.api.deps import get_app_settings, get_tracking_poller
from charter_coordinator.api.middleware import bearer_matches
from charter_coordinator.config import Settings
from charter_coordinator.domain.exceptions import AuthenticationError
from charter_coordinator.infrastructure.redis_client import tick_lock
from charter_coordinator.logging_config import get_logger
from charter_coordinator.schemas.tracking import PollSummaryResponse
from charter_coordinator.services.tracking_poller import TrackingPoller

router = APIRouter(prefix="/api/v1/cron", tags=["Scheduler"])
logger = get_logger(__name__)

POLL_LOCK_NAME = "poll-ais"


def require_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject callers without the shared scheduler secret. An unset secret rejects everyone."""
    if not bearer_matches(authorization, settings.cron_secret):
        logger.warning("cron.unauthorized")
        raise AuthenticationError("Invalid scheduler credentials")


@router.post(
    "/poll-ais",
    response_model=PollSummaryResponse,
    summary="Run one AIS polling tick",
    dependencies=[Depends(require_cron_secret)],
)
async def poll_ais(
    poller: TrackingPoller = Depends(get_tracking_poller),
) -> PollSummaryResponse:
    ttl = poller.lock_ttl_seconds
    async with tick_lock(POLL_LOCK_NAME, ttl) as acquired:
        if not acquired:
            return PollSummaryResponse(tracked=0, skipped=0, failed=0, busy=True)
        summary = await poller.run()
    return PollSummaryResponse.model_validate(summary)
