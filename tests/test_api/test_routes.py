"""HTTP-level tests: status codes, error envelopes and auth on the REST API.

The app is driven in-process through httpx's ASGI transport. Database,
platform config, providers and collaborators are swapped for the test
fixtures via ``dependency_overrides``; the lifespan never runs.
"""

from __future__ import annotations

import base64
import uuid

import httpx
import pytest

from charter_coordinator.api.deps import (
    get_ais_provider,
    get_app_settings,
    get_db_session,
    get_document_store,
    get_platform,
    get_provider_registry,
)
from charter_coordinator.config import Settings
from charter_coordinator.main import create_app

from conftest import (
    ADMIN_ID,
    OPERATOR_ID,
    OWNER_ID,
    SIGNATURE_PNG,
    StubAisProvider,
    paystack_delivery,
)

CRON_SECRET = "cron-test-secret"


@pytest.fixture
async def client(session, platform, providers, document_store, seeded):
    app = create_app()

    async def _session_override():
        yield session

    app.dependency_overrides[get_db_session] = _session_override
    app.dependency_overrides[get_platform] = lambda: platform
    app.dependency_overrides[get_provider_registry] = lambda: providers
    app.dependency_overrides[get_document_store] = lambda: document_store
    app.dependency_overrides[get_ais_provider] = lambda: StubAisProvider()
    app.dependency_overrides[get_app_settings] = lambda: Settings(cron_secret=CRON_SECRET)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def as_user(user_id: str) -> dict[str, str]:
    return {"X-Actor-Id": user_id}


def booking_body(vessel_id: uuid.UUID, **overrides) -> dict:
    body = {
        "vessel_id": str(vessel_id),
        "start": "2030-06-11T12:00:00Z",
        "end": "2030-06-14T12:00:00Z",
        "terms": {"purpose": "Offshore crew transfer to the Bonga FPSO", "estimatedCrew": 12},
    }
    body.update(overrides)
    return body


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_actor_header(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/bookings")
        assert response.status_code == 401
        assert response.json()["error"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_unknown_actor(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/bookings", headers=as_user("ghost"))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            "/api/v1/bookings",
            headers={**as_user(OPERATOR_ID), "X-Request-ID": "req-123"},
        )
        assert response.headers["X-Request-ID"] == "req-123"


class TestBookingRoutes:
    @pytest.mark.asyncio
    async def test_propose_counter_accept(self, client: httpx.AsyncClient, vessel) -> None:
        created = await client.post(
            "/api/v1/bookings", json=booking_body(vessel.id), headers=as_user(OPERATOR_ID)
        )
        assert created.status_code == 201
        booking = created.json()
        assert booking["status"] == "REQUESTED"
        assert booking["owner_id"] == OWNER_ID

        countered = await client.post(
            f"/api/v1/bookings/{booking['id']}/counter",
            json={
                "counterNote": "Peak season pricing applies",
                "pricing": {"dailyRate": "1800", "currency": "NGN"},
            },
            headers=as_user(OWNER_ID),
        )
        assert countered.status_code == 200
        assert countered.json()["status"] == "COUNTERED"

        accepted = await client.post(
            f"/api/v1/bookings/{booking['id']}/accept", headers=as_user(OPERATOR_ID)
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "ACCEPTED"

    @pytest.mark.asyncio
    async def test_end_before_start_is_400(self, client: httpx.AsyncClient, vessel) -> None:
        response = await client.post(
            "/api/v1/bookings",
            json=booking_body(vessel.id, end="2030-06-10T12:00:00Z"),
            headers=as_user(OPERATOR_ID),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/bookings", json={"vessel_id": "nope"}, headers=as_user(OPERATOR_ID)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_owner_cannot_propose_is_403(
        self, client: httpx.AsyncClient, vessel
    ) -> None:
        response = await client.post(
            "/api/v1/bookings", json=booking_body(vessel.id), headers=as_user(OWNER_ID)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_booking_is_404(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            f"/api/v1/bookings/{uuid.uuid4()}", headers=as_user(ADMIN_ID)
        )
        assert response.status_code == 404
        assert response.json()["error"] == "BOOKING_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_accepting_twice_is_409(
        self, client: httpx.AsyncClient, accepted_booking
    ) -> None:
        booking = await accepted_booking()
        response = await client.post(
            f"/api/v1/bookings/{booking.id}/accept", headers=as_user(OWNER_ID)
        )
        assert response.status_code == 409


class TestContractRoutes:
    @pytest.mark.asyncio
    async def test_sign_with_data_url(
        self, client: httpx.AsyncClient, accepted_booking
    ) -> None:
        booking = await accepted_booking()
        image = "data:image/png;base64," + base64.b64encode(SIGNATURE_PNG).decode()

        response = await client.post(
            f"/api/v1/contracts/{booking.contract.id}/sign",
            json={"signature_image": image, "signer_role": "OWNER"},
            headers=as_user(OWNER_ID),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["signer_ids"] == [OWNER_ID]
        assert len(body["signatures"]) == 1

    @pytest.mark.asyncio
    async def test_role_mismatch_is_400(
        self, client: httpx.AsyncClient, accepted_booking
    ) -> None:
        booking = await accepted_booking()
        response = await client.post(
            f"/api/v1/contracts/{booking.contract.id}/sign",
            json={
                "signature_image": base64.b64encode(SIGNATURE_PNG).decode(),
                "signer_role": "OPERATOR",
            },
            headers=as_user(OWNER_ID),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "ROLE_MISMATCH"

    @pytest.mark.asyncio
    async def test_invalid_base64_is_400(
        self, client: httpx.AsyncClient, accepted_booking
    ) -> None:
        booking = await accepted_booking()
        response = await client.post(
            f"/api/v1/contracts/{booking.contract.id}/sign",
            json={"signature_image": "%%% not base64 %%%", "signer_role": "OWNER"},
            headers=as_user(OWNER_ID),
        )
        assert response.status_code == 400


class TestWebhookRoute:
    @pytest.mark.asyncio
    async def test_valid_delivery_then_replay(
        self, client: httpx.AsyncClient, signed_contract
    ) -> None:
        contract = await signed_contract()
        body, headers = paystack_delivery(str(contract.booking.escrow.id))

        first = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
        second = await client.post("/api/v1/payments/webhook", content=body, headers=headers)

        assert first.status_code == 200
        assert first.json()["outcome"] == "applied"
        assert second.status_code == 200
        assert second.json()["outcome"] == "duplicate"

    @pytest.mark.asyncio
    async def test_non_funding_event_is_acknowledged(
        self, client: httpx.AsyncClient, signed_contract
    ) -> None:
        contract = await signed_contract()
        body, headers = paystack_delivery(
            str(contract.booking.escrow.id), event="transfer.success"
        )

        response = await client.post("/api/v1/payments/webhook", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["outcome"] == "ignored"

    @pytest.mark.asyncio
    async def test_bad_signature_is_401(self, client: httpx.AsyncClient) -> None:
        body, _ = paystack_delivery(str(uuid.uuid4()))
        response = await client.post(
            "/api/v1/payments/webhook",
            content=body,
            headers={"x-paystack-signature": "deadbeef"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_SIGNATURE"

    @pytest.mark.asyncio
    async def test_unknown_escrow_asks_for_retry(self, client: httpx.AsyncClient) -> None:
        body, headers = paystack_delivery(str(uuid.uuid4()))
        response = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"


class TestEscrowRoutes:
    @pytest.mark.asyncio
    async def test_early_release_is_400(
        self, client: httpx.AsyncClient, funded_escrow
    ) -> None:
        escrow = await funded_escrow()
        response = await client.post(
            f"/api/v1/escrow/{escrow.id}/release",
            json={"reason": "Charter completed without incident"},
            headers=as_user(OWNER_ID),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "EARLY_RELEASE"

    @pytest.mark.asyncio
    async def test_events_are_listed(
        self, client: httpx.AsyncClient, funded_escrow
    ) -> None:
        escrow = await funded_escrow()
        response = await client.get(
            f"/api/v1/escrow/{escrow.id}/events", headers=as_user(OPERATOR_ID)
        )
        assert response.status_code == 200
        assert [e["event_type"] for e in response.json()] == ["CREATED", "FUNDED"]


class TestCronRoute:
    @pytest.mark.asyncio
    async def test_missing_secret_is_401(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/v1/cron/poll-ais")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_secret_is_401(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/cron/poll-ais", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_tick_with_nothing_to_track(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/cron/poll-ais", headers={"Authorization": f"Bearer {CRON_SECRET}"}
        )
        assert response.status_code == 200
        assert response.json() == {
            "tracked": 0,
            "skipped": 0,
            "failed": 0,
            "busy": False,
            "outcomes": [],
        }
