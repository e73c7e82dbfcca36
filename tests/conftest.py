"""Shared test fixtures for the Charter Coordinator test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with every table created
    - Seeded users (owner, operators, admin, regulator) and a vessel
    - A controllable clock injected into every service
    - Service fixtures wired the same way the API wires them
    - Factory fixtures that drive a booking to a given lifecycle stage
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from charter_coordinator.config import PlatformConfig
from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.domain.collaborators import Position
from charter_coordinator.domain.enums import AisSource, PaymentProvider, UserRole
from charter_coordinator.domain.provider_protocol import PaymentConfirmed
from charter_coordinator.domain.windows import CharterWindow
from charter_coordinator.infrastructure.database.engine import build_engine
from charter_coordinator.infrastructure.database.orm_models import (
    Base,
    Booking,
    Contract,
    EscrowTransaction,
    User,
    Vessel,
)
from charter_coordinator.infrastructure.documents import LocalDocumentStore
from charter_coordinator.providers import ProviderRegistry
from charter_coordinator.providers.flutterwave import FlutterwaveAdapter
from charter_coordinator.providers.paystack import PaystackAdapter
from charter_coordinator.services.booking_service import BookingService
from charter_coordinator.services.contract_service import ContractService
from charter_coordinator.services.escrow_service import EscrowService

BASE_TIME = datetime(2030, 6, 1, 12, 0, tzinfo=UTC)

OWNER_ID = "user-owner"
OPERATOR_ID = "user-operator"
OTHER_OPERATOR_ID = "user-operator-2"
ADMIN_ID = "user-admin"
REGULATOR_ID = "user-regulator"

PAYSTACK_SECRET = "sk_test_paystack"
FLUTTERWAVE_HASH = "flw-secret-hash"

SIGNATURE_PNG = b"\x89PNG\r\n\x1a\nfake-signature-bytes"

DEFAULT_TERMS = {
    "purpose": "Offshore crew transfer to the Bonga FPSO",
    "estimatedCrew": 12,
}


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def platform() -> PlatformConfig:
    return PlatformConfig(version="test-2030-06")


@pytest.fixture
def charter_window() -> CharterWindow:
    """Three-day charter starting ten days after BASE_TIME."""
    start = BASE_TIME + timedelta(days=10)
    return CharterWindow(start, start + timedelta(days=3))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(session: AsyncSession) -> dict[str, Any]:
    """Users and one ACTIVE vessel with an MMSI and listed pricing."""
    session.add_all(
        [
            User(id=OWNER_ID, role=UserRole.OWNER.value, email="owner@example.com"),
            User(id=OPERATOR_ID, role=UserRole.OPERATOR.value, email="ops@example.com"),
            User(
                id=OTHER_OPERATOR_ID,
                role=UserRole.OPERATOR.value,
                email="ops2@example.com",
            ),
            User(id=ADMIN_ID, role=UserRole.ADMIN.value, email="admin@example.com"),
            User(
                id=REGULATOR_ID,
                role=UserRole.REGULATOR.value,
                email="regulator@example.com",
            ),
        ]
    )
    vessel = Vessel(
        owner_id=OWNER_ID,
        name="MV Atlantic Dawn",
        vessel_type="CREW_BOAT",
        status="ACTIVE",
        specs={
            "mmsi": "657123456",
            "pricing": {
                "dailyRate": 1500,
                "currency": "NGN",
                "securityDeposit": 5000,
            },
        },
    )
    session.add(vessel)
    await session.flush()
    return {"vessel": vessel}


@pytest.fixture
def vessel(seeded) -> Vessel:
    return seeded["vessel"]


@pytest.fixture
def owner() -> Actor:
    return Actor(id=OWNER_ID, role=UserRole.OWNER)


@pytest.fixture
def operator() -> Actor:
    return Actor(id=OPERATOR_ID, role=UserRole.OPERATOR)


@pytest.fixture
def other_operator() -> Actor:
    return Actor(id=OTHER_OPERATOR_ID, role=UserRole.OPERATOR)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=ADMIN_ID, role=UserRole.ADMIN)


@pytest.fixture
def regulator() -> Actor:
    return Actor(id=REGULATOR_ID, role=UserRole.REGULATOR)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def document_store(tmp_path) -> LocalDocumentStore:
    return LocalDocumentStore(tmp_path / "documents", "https://docs.example.com")


@pytest.fixture
def providers() -> ProviderRegistry:
    return ProviderRegistry(
        [
            PaystackAdapter(PAYSTACK_SECRET, "https://app.example.com"),
            FlutterwaveAdapter(FLUTTERWAVE_HASH, "https://app.example.com"),
        ]
    )


class StubAisProvider:
    """AisProvider returning canned results per identifier.

    A value may be a Position, None, or an exception instance to raise.
    """

    def __init__(self, results: dict[str, Any] | None = None, delay: float = 0.0) -> None:
        self.results = results or {}
        self.delay = delay
        self.calls: list[str] = []

    async def fetch_vessel_position(self, identifier: str) -> Position | None:
        self.calls.append(identifier)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.get(identifier)
        if isinstance(result, BaseException):
            raise result
        return result


def make_position(
    latitude: float = 4.35,
    longitude: float = 7.1,
    timestamp: datetime | None = None,
    provider: AisSource = AisSource.MARINETRAFFIC,
) -> Position:
    return Position(
        latitude=latitude,
        longitude=longitude,
        timestamp=timestamp or BASE_TIME,
        provider=provider,
        meta={"speed": 11.5},
    )


# ---------------------------------------------------------------------------
# Webhook payload helpers
# ---------------------------------------------------------------------------


def paystack_delivery(
    escrow_id: str, reference: str = "PSK-REF-001", event: str = "charge.success"
) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(
        {
            "event": event,
            "data": {
                "reference": reference,
                "status": "success",
                "metadata": {"escrowId": escrow_id},
            },
        }
    ).encode()
    signature = hmac.new(PAYSTACK_SECRET.encode(), body, hashlib.sha512).hexdigest()
    return body, {"x-paystack-signature": signature}


def flutterwave_delivery(
    escrow_id: str, tx_ref: str = "FLW-REF-001", status: str = "successful"
) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(
        {
            "event": "charge.completed",
            "data": {
                "tx_ref": tx_ref,
                "status": status,
                "meta": {"escrowId": escrow_id},
            },
        }
    ).encode()
    signature = hashlib.sha256(body + FLUTTERWAVE_HASH.encode()).hexdigest()
    return body, {"verif-hash": signature}


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def escrow_service(session, platform, providers, clock) -> EscrowService:
    return EscrowService(session, platform, providers=providers, clock=clock)


@pytest.fixture
def contract_service(
    session, platform, document_store, escrow_service, clock
) -> ContractService:
    return ContractService(
        session,
        platform,
        documents=document_store,
        escrow_service=escrow_service,
        clock=clock,
    )


@pytest.fixture
def booking_service(session, platform, contract_service, clock) -> BookingService:
    return BookingService(
        session, platform, contract_service=contract_service, clock=clock
    )


# ---------------------------------------------------------------------------
# Lifecycle factories
# ---------------------------------------------------------------------------


@pytest.fixture
def propose(
    booking_service, vessel, operator, charter_window
) -> Callable[..., Awaitable[Booking]]:
    async def _propose(**overrides: Any) -> Booking:
        return await booking_service.propose(
            vessel_id=overrides.get("vessel_id", vessel.id),
            actor=overrides.get("actor", operator),
            window=overrides.get("window", charter_window),
            terms=overrides.get("terms", dict(DEFAULT_TERMS)),
        )

    return _propose


@pytest.fixture
def accepted_booking(
    propose, booking_service, owner
) -> Callable[..., Awaitable[Booking]]:
    """REQUESTED by the operator, accepted by the owner."""

    async def _accepted(**overrides: Any) -> Booking:
        booking = await propose(**overrides)
        return await booking_service.accept(booking.id, owner)

    return _accepted


@pytest.fixture
def signed_contract(
    accepted_booking, contract_service, session, owner, operator
) -> Callable[..., Awaitable[Contract]]:
    """Accepted booking whose contract both parties have signed."""

    async def _signed(**overrides: Any) -> Contract:
        booking = await accepted_booking(**overrides)
        contract = booking.contract
        await contract_service.sign(contract.id, owner, SIGNATURE_PNG, "OWNER")
        return await contract_service.sign(
            contract.id, operator, SIGNATURE_PNG + b"-op", "OPERATOR"
        )

    return _signed


@pytest.fixture
def funded_escrow(
    signed_contract, escrow_service
) -> Callable[..., Awaitable[EscrowTransaction]]:
    """Fully signed contract whose escrow a provider has confirmed."""

    async def _funded(**overrides: Any) -> EscrowTransaction:
        contract = await signed_contract(**overrides)
        escrow = contract.booking.escrow
        escrow, applied = await escrow_service.confirm_payment(
            PaymentConfirmed(
                escrow_id=escrow.id,
                provider=PaymentProvider.PAYSTACK,
                provider_reference="PSK-REF-001",
                event_name="charge.success",
            )
        )
        assert applied is True
        return escrow

    return _funded


EXPECTED_AMOUNT = Decimal("9500.00")  # 3 days x 1500 + 5000 deposit
EXPECTED_FEE = Decimal("665.00")  # 7%
