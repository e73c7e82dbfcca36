#!/usr/bin/env python3
"""Charter Coordinator: End-to-End Simulation.

Drives three charters through the real services with an OwnerBot and an
OperatorBot. Payment providers and AIS are simulated: webhook deliveries are
signed locally with the same secrets the registry verifies against, and
positions come from a scripted AIS provider.

    Scenario 1: Happy Path
        - Operator proposes, owner counters, operator accepts
        - Both parties sign -> escrow opened
        - Paystack webhook funds the escrow (and is replayed once)
        - AIS tick records positions mid-charter
        - Owner releases after the charter ends

    Scenario 2: Dispute
        - Charter funded via Flutterwave
        - Operator raises a dispute
        - Owner release is refused; admin releases

    Scenario 3: Hostile Webhooks
        - Forged signature -> rejected
        - Tampered body -> rejected
        - Payment for an escrow that does not exist yet -> retry later

Usage:
    # Against the database in DATABASE_URL (PostgreSQL, schema via alembic):
    uv run alembic upgrade head
    uv run python simulation.py

    # Without a database server (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import hmac
import json
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from charter_coordinator.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from charter_coordinator.config import PlatformConfig  # noqa: E402
from charter_coordinator.domain.capabilities import Actor  # noqa: E402
from charter_coordinator.domain.collaborators import Position  # noqa: E402
from charter_coordinator.domain.enums import AisSource, UserRole  # noqa: E402
from charter_coordinator.domain.exceptions import CharterError  # noqa: E402
from charter_coordinator.domain.windows import CharterWindow  # noqa: E402
from charter_coordinator.infrastructure.documents import LocalDocumentStore  # noqa: E402
from charter_coordinator.providers import ProviderRegistry  # noqa: E402
from charter_coordinator.providers.flutterwave import FlutterwaveAdapter  # noqa: E402
from charter_coordinator.providers.paystack import PaystackAdapter  # noqa: E402

PAYSTACK_SECRET = "sk_sim_paystack"
FLUTTERWAVE_HASH = "sim-flutterwave-hash"
PUBLIC_URL = "http://localhost:3000"

PLATFORM = PlatformConfig(version="simulation")
PROVIDERS = ProviderRegistry(
    [
        PaystackAdapter(PAYSTACK_SECRET, PUBLIC_URL),
        FlutterwaveAdapter(FLUTTERWAVE_HASH, PUBLIC_URL),
    ]
)
DOCUMENTS = LocalDocumentStore(
    tempfile.mkdtemp(prefix="charter-sim-"), "file:///tmp/charter-sim"
)

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
        from sqlalchemy.pool import StaticPool

        from charter_coordinator.infrastructure.database.engine import build_engine
        from charter_coordinator.infrastructure.database.orm_models import Base

        _sqlite_engine = build_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _sqlite_session_factory = async_sessionmaker(
            bind=_sqlite_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from charter_coordinator.infrastructure.database.engine import init_db

        await init_db()


def get_session():
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from charter_coordinator.infrastructure.database.engine import get_session_factory

    return get_session_factory()()


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory
    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from charter_coordinator.infrastructure.database.engine import close_db

        await close_db()


# ---------------------------------------------------------------------------
# Simulated world
# ---------------------------------------------------------------------------
@dataclass
class SimClock:
    """Wall clock the scenarios fast-forward through a charter."""

    now: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class ScriptedAis:
    """AIS provider that sails the vessel north a little on every request."""

    def __init__(self, clock: SimClock, start: tuple[float, float] = (4.25, 7.0)) -> None:
        self._clock = clock
        self._lat, self._lng = start

    async def fetch_vessel_position(self, identifier: str) -> Position | None:
        self._lat += 0.05
        return Position(
            latitude=round(self._lat, 5),
            longitude=self._lng,
            timestamp=self._clock(),
            provider=AisSource.MARINETRAFFIC,
            meta={"speed": 11.5, "course": 0, "mmsi": identifier},
        )


def signed_paystack(escrow_id: uuid.UUID, reference: str) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(
        {
            "event": "charge.success",
            "data": {"reference": reference, "metadata": {"escrowId": str(escrow_id)}},
        }
    ).encode()
    signature = hmac.new(PAYSTACK_SECRET.encode(), body, hashlib.sha512).hexdigest()
    return body, {"x-paystack-signature": signature}


def signed_flutterwave(escrow_id: uuid.UUID, tx_ref: str) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(
        {
            "event": "charge.completed",
            "data": {
                "tx_ref": tx_ref,
                "status": "successful",
                "meta": {"escrowId": str(escrow_id)},
            },
        }
    ).encode()
    signature = hashlib.sha256(body + FLUTTERWAVE_HASH.encode()).hexdigest()
    return body, {"verif-hash": signature}


@dataclass
class Cast:
    owner: Actor
    operator: Actor
    admin: Actor
    vessel_id: uuid.UUID


async def seed(session: Any) -> Cast:
    """Create a fresh owner, operator, admin and vessel for one scenario."""
    from charter_coordinator.infrastructure.database.orm_models import User, Vessel

    suffix = uuid.uuid4().hex[:8]
    owner = Actor(f"owner-{suffix}", UserRole.OWNER)
    operator = Actor(f"operator-{suffix}", UserRole.OPERATOR)
    admin = Actor(f"admin-{suffix}", UserRole.ADMIN)
    session.add_all(
        [
            User(id=owner.id, role=owner.role.value, email=f"{owner.id}@sim.local"),
            User(id=operator.id, role=operator.role.value, email=f"{operator.id}@sim.local"),
            User(id=admin.id, role=admin.role.value, email=f"{admin.id}@sim.local"),
        ]
    )
    vessel = Vessel(
        owner_id=owner.id,
        name="MV Gulf of Guinea Star",
        vessel_type="SUPPLY_VESSEL",
        specs={
            "mmsi": "657000111",
            "pricing": {"dailyRate": 2500, "currency": "NGN", "securityDeposit": 10000},
        },
    )
    session.add(vessel)
    await session.commit()
    return Cast(owner=owner, operator=operator, admin=admin, vessel_id=vessel.id)


@dataclass
class Services:
    booking: Any
    contract: Any
    escrow: Any
    webhooks: Any
    clock: SimClock

    @classmethod
    def wire(cls, session: Any, clock: SimClock) -> Services:
        """Wire the services the same way the API dependencies do."""
        from charter_coordinator.services.booking_service import BookingService
        from charter_coordinator.services.contract_service import ContractService
        from charter_coordinator.services.escrow_service import EscrowService
        from charter_coordinator.services.webhook_gateway import WebhookGateway

        escrow = EscrowService(session, PLATFORM, providers=PROVIDERS, clock=clock)
        contract = ContractService(
            session, PLATFORM, documents=DOCUMENTS, escrow_service=escrow, clock=clock
        )
        booking = BookingService(
            session, PLATFORM, contract_service=contract, clock=clock
        )
        return cls(
            booking=booking,
            contract=contract,
            escrow=escrow,
            webhooks=WebhookGateway(PROVIDERS, escrow),
            clock=clock,
        )


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class OperatorBot:
    """Simulated charter operator: proposes, signs and pays."""

    actor: Actor

    async def propose(self, svc: Services, vessel_id: uuid.UUID, days: int) -> uuid.UUID:
        start = svc.clock() + timedelta(days=2)
        booking = await svc.booking.propose(
            vessel_id,
            self.actor,
            CharterWindow(start, start + timedelta(days=days)),
            {
                "purpose": "Crew change and supply run to offshore platform",
                "estimatedCrew": 18,
                "route": "Onne -> Bonga FPSO",
            },
        )
        logger.info("🟢 OPERATOR: Charter proposed", booking_id=str(booking.id))
        return booking.id

    async def accept(self, svc: Services, booking_id: uuid.UUID) -> uuid.UUID:
        booking = await svc.booking.accept(booking_id, self.actor)
        logger.info("🟢 OPERATOR: Terms accepted", contract_id=str(booking.contract.id))
        return booking.contract.id

    async def sign(self, svc: Services, contract_id: uuid.UUID) -> None:
        await svc.contract.sign(contract_id, self.actor, b"operator-signature", "OPERATOR")
        logger.info("🟢 OPERATOR: Contract signed", contract_id=str(contract_id))

    async def checkout(self, svc: Services, escrow_id: uuid.UUID, provider: str) -> str:
        checkout = await svc.escrow.initiate_checkout(escrow_id, self.actor, provider)
        logger.info(
            "🟢 OPERATOR: Checkout started",
            provider=checkout["provider"],
            amount=checkout["amount"],
            currency=checkout["currency"],
        )
        return checkout["reference"]


@dataclass
class OwnerBot:
    """Simulated vessel owner: counters, signs and releases."""

    actor: Actor

    async def counter(self, svc: Services, booking_id: uuid.UUID) -> None:
        await svc.booking.counter(
            booking_id,
            self.actor,
            note="Peak season: daily rate raised, deposit unchanged",
            pricing={"dailyRate": 2800, "currency": "NGN", "securityDeposit": 10000},
        )
        logger.info("🔵 OWNER: Counter-offer sent", booking_id=str(booking_id))

    async def sign(self, svc: Services, contract_id: uuid.UUID) -> None:
        await svc.contract.sign(contract_id, self.actor, b"owner-signature", "OWNER")
        logger.info("🔵 OWNER: Contract signed", contract_id=str(contract_id))

    async def release(self, svc: Services, escrow_id: uuid.UUID) -> None:
        await svc.escrow.release(escrow_id, self.actor, "Charter completed as agreed")
        logger.info("🔵 OWNER: Funds released", escrow_id=str(escrow_id))


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_escrow_log(svc: Services, escrow_id: uuid.UUID, actor: Actor) -> None:
    """Print the append-only escrow log."""
    events = await svc.escrow.get_events(escrow_id, actor)
    print("\n  📜 Escrow Log:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.event_type}] {old} → {evt.new_status} (by {evt.actor})")
    print()


async def negotiate_and_sign(
    svc: Services, owner: OwnerBot, operator: OperatorBot, vessel_id: uuid.UUID
) -> tuple[uuid.UUID, uuid.UUID]:
    """Common opening: propose, counter, accept, sign twice. Returns (booking, escrow)."""
    section("Negotiation")
    booking_id = await operator.propose(svc, vessel_id, days=4)
    await owner.counter(svc, booking_id)
    contract_id = await operator.accept(svc, booking_id)

    section("Signatures")
    await operator.sign(svc, contract_id)
    await owner.sign(svc, contract_id)

    escrow = (await svc.booking.get_booking(booking_id, owner.actor)).escrow
    print(f"  Escrow opened: {escrow.amount} {escrow.currency} (fee {escrow.platform_fee})")
    return booking_id, escrow.id


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Full charter from proposal to payout."""
    banner("SCENARIO 1: Happy Path: Negotiate, Sign, Fund, Track, Release")

    from charter_coordinator.services.tracking_poller import TrackingPoller
    from charter_coordinator.services.tracking_service import TrackingService

    clock = SimClock()
    async with get_session() as session:
        cast = await seed(session)
        svc = Services.wire(session, clock)
        owner, operator = OwnerBot(cast.owner), OperatorBot(cast.operator)

        booking_id, escrow_id = await negotiate_and_sign(svc, owner, operator, cast.vessel_id)
        await session.commit()

        section("Funding via Paystack webhook")
        reference = await operator.checkout(svc, escrow_id, "PAYSTACK")
        body, headers = signed_paystack(escrow_id, reference)
        first = await svc.webhooks.ingest(body, headers)
        replay = await svc.webhooks.ingest(body, headers)
        await session.commit()
        print(f"  First delivery: {first.outcome.value}, replay: {replay.outcome.value}")

        section("AIS tracking during the charter")
        ais = ScriptedAis(clock)
        poller = TrackingPoller(session, PLATFORM, ais=ais, clock=clock)
        clock.advance(days=3)
        for _ in range(3):
            summary = await poller.run()
            print(f"  Tick: tracked={summary.tracked} failed={summary.failed}")
            clock.advance(hours=6)
        await session.commit()

        route = await TrackingService(session, PLATFORM, clock=clock).route_summary(
            booking_id, cast.owner
        )
        print(f"  Route: {len(route.points)} points, {route.distance_km} km")

        section("Release after the charter")
        clock.advance(days=3)
        await owner.release(svc, escrow_id)
        await session.commit()

        await print_escrow_log(svc, escrow_id, cast.owner)


# ===========================================================================
# Scenario 2: Dispute
# ===========================================================================
async def scenario_2_dispute() -> None:
    """Operator disputes; only the admin can release."""
    banner("SCENARIO 2: Dispute: Owner Release Refused, Admin Releases")

    clock = SimClock()
    async with get_session() as session:
        cast = await seed(session)
        svc = Services.wire(session, clock)
        owner, operator = OwnerBot(cast.owner), OperatorBot(cast.operator)

        _, escrow_id = await negotiate_and_sign(svc, owner, operator, cast.vessel_id)

        section("Funding via Flutterwave webhook")
        reference = await operator.checkout(svc, escrow_id, "FLUTTERWAVE")
        result = await svc.webhooks.ingest(*signed_flutterwave(escrow_id, reference))
        await session.commit()
        print(f"  Delivery: {result.outcome.value}")

        section("Operator raises a dispute")
        await svc.escrow.raise_dispute(
            escrow_id, cast.operator, "Vessel arrived two days late at Bonga"
        )
        await session.commit()

        section("Owner tries to release")
        clock.advance(days=10)
        try:
            await owner.release(svc, escrow_id)
        except CharterError as exc:
            print(f"  🛡️  Refused: {exc.message}")

        section("Admin resolves and releases")
        await svc.escrow.release(
            escrow_id, cast.admin, "Dispute reviewed, partial delay accepted"
        )
        await session.commit()

        await print_escrow_log(svc, escrow_id, cast.admin)


# ===========================================================================
# Scenario 3: Hostile Webhooks
# ===========================================================================
async def scenario_3_hostile_webhooks() -> None:
    """Forged, tampered and premature deliveries never move an escrow."""
    banner("SCENARIO 3: Hostile Webhooks: Forged, Tampered, Premature")

    clock = SimClock()
    async with get_session() as session:
        cast = await seed(session)
        svc = Services.wire(session, clock)
        owner, operator = OwnerBot(cast.owner), OperatorBot(cast.operator)

        _, escrow_id = await negotiate_and_sign(svc, owner, operator, cast.vessel_id)
        await session.commit()

        body, headers = signed_paystack(escrow_id, "PSK-HOSTILE-1")
        attempts = [
            ("Forged signature", body, {"x-paystack-signature": "0" * 128}),
            ("Tampered body", body.replace(b"HOSTILE", b"FRIENDLY"), headers),
            ("Unknown escrow", *signed_paystack(uuid.uuid4(), "PSK-EARLY-1")),
            ("No provider header", body, {"content-type": "application/json"}),
        ]
        for label, raw, hdrs in attempts:
            section(label)
            try:
                result = await svc.webhooks.ingest(raw, hdrs)
                print(f"  ⚠️  Unexpectedly accepted: {result.outcome.value}")
            except CharterError as exc:
                print(f"  🛡️  {exc.code}: {exc.message}")

        escrow = await svc.escrow.get_escrow(escrow_id, cast.owner)
        print(f"\n  🛡️  Escrow still {escrow.status}")
        await print_escrow_log(svc, escrow_id, cast.owner)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_dispute,
    3: scenario_3_hostile_webhooks,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "⚓" * 35)
        print("  CHARTER COORDINATOR: SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print(f"  Platform config: {PLATFORM.version}")
        print("⚓" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Charter Coordinator Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
