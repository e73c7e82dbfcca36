"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the acting user, collaborators, and the services wired on top of them.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from charter_coordinator.config import (
    PlatformConfig,
    Settings,
    get_platform_config,
    get_settings,
)
from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.domain.collaborators import AisProvider, DocumentStore
from charter_coordinator.domain.exceptions import AuthenticationError
from charter_coordinator.infrastructure.ais import FailoverAisProvider
from charter_coordinator.infrastructure.database.engine import get_async_session
from charter_coordinator.infrastructure.database.repositories import UserRepository
from charter_coordinator.infrastructure.documents import LocalDocumentStore
from charter_coordinator.logging_config import bind_actor
from charter_coordinator.providers import ProviderRegistry
from charter_coordinator.services.booking_service import BookingService
from charter_coordinator.services.contract_service import ContractService
from charter_coordinator.services.escrow_service import EscrowService
from charter_coordinator.services.tracking_poller import TrackingPoller
from charter_coordinator.services.tracking_service import TrackingService
from charter_coordinator.services.webhook_gateway import WebhookGateway

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_platform() -> PlatformConfig:
    """Provide the platform configuration snapshot."""
    return get_platform_config()


# ---------------------------------------------------------------------------
# Collaborators (process-wide singletons)
# ---------------------------------------------------------------------------


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    return ProviderRegistry.from_settings(get_settings(), get_platform_config())


@lru_cache
def get_document_store() -> DocumentStore:
    settings = get_settings()
    return LocalDocumentStore(
        settings.document_store_path, settings.document_store_public_url
    )


@lru_cache
def get_ais_provider() -> AisProvider:
    return FailoverAisProvider.from_settings(get_settings(), get_platform_config())


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


async def get_current_actor(
    x_actor_id: str | None = Header(default=None),
    session: AsyncSession = Depends(get_db_session),
) -> Actor:
    """Resolve the caller from the ``X-Actor-Id`` header set by the auth proxy."""
    if not x_actor_id:
        raise AuthenticationError("Missing X-Actor-Id header")
    actor = await UserRepository(session).resolve_user(x_actor_id)
    if actor is None:
        raise AuthenticationError(f"Unknown user: {x_actor_id}")
    bind_actor(actor.id, actor.role.value)
    return actor


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    platform: PlatformConfig = Depends(get_platform),
    providers: ProviderRegistry = Depends(get_provider_registry),
) -> EscrowService:
    return EscrowService(session, platform, providers=providers)


async def get_contract_service(
    session: AsyncSession = Depends(get_db_session),
    platform: PlatformConfig = Depends(get_platform),
    documents: DocumentStore = Depends(get_document_store),
    escrow_service: EscrowService = Depends(get_escrow_service),
) -> ContractService:
    return ContractService(
        session, platform, documents=documents, escrow_service=escrow_service
    )


async def get_booking_service(
    session: AsyncSession = Depends(get_db_session),
    platform: PlatformConfig = Depends(get_platform),
    contract_service: ContractService = Depends(get_contract_service),
) -> BookingService:
    return BookingService(session, platform, contract_service=contract_service)


async def get_tracking_service(
    session: AsyncSession = Depends(get_db_session),
    platform: PlatformConfig = Depends(get_platform),
) -> TrackingService:
    return TrackingService(session, platform)


async def get_tracking_poller(
    session: AsyncSession = Depends(get_db_session),
    platform: PlatformConfig = Depends(get_platform),
    ais: AisProvider = Depends(get_ais_provider),
) -> TrackingPoller:
    return TrackingPoller(session, platform, ais=ais)


async def get_webhook_gateway(
    providers: ProviderRegistry = Depends(get_provider_registry),
    escrow_service: EscrowService = Depends(get_escrow_service),
) -> WebhookGateway:
    return WebhookGateway(providers, escrow_service)
