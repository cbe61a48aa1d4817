from __future__ import annotations

import sqlite3
from dataclasses import replace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from stayhub.controllers.b2b_controller import router as b2b_router
from stayhub.controllers.booking_controller import router as booking_router
from stayhub.controllers.dashboard_controller import router as dashboard_router
from stayhub.repository.data_repository import BookingRepository
from stayhub.services.auth_service import AuthService
from stayhub.services.availability_service import AvailabilityService
from stayhub.services.b2b_service import B2BRequestService
from stayhub.services.booking_service import BookingService
from stayhub.services.commission_service import CommissionService
from stayhub.services.dashboard_service import DashboardService
from stayhub.services.quote_service import QuoteService
from stayhub.utils.config import get_settings


ADMIN_TOKEN = "secret-admin-token"
TENT, COTTAGE, DOME = 1, 2, 3
STAY = {"check_in": "2026-03-01", "check_out": "2026-03-04"}


def _build_test_settings(tmp_path, filename: str, admin_token: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        admin_token=admin_token,
        store_retry_attempts=2,
        store_retry_base_delay_seconds=0.0,
    )


def _build_test_app(tmp_path, admin_token: str = ADMIN_TOKEN) -> tuple[FastAPI, BookingRepository]:
    settings = _build_test_settings(tmp_path, "api_flow.db", admin_token)
    repository = BookingRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data()

    commission_service = CommissionService(repository=repository, settings=settings)
    quote_service = QuoteService(
        repository=repository,
        settings=settings,
        commission_service=commission_service,
    )

    app = FastAPI()
    app.include_router(dashboard_router)
    app.include_router(booking_router)
    app.include_router(b2b_router)
    app.state.repository = repository
    app.state.auth_service = AuthService(settings=settings)
    app.state.availability_service = AvailabilityService(repository=repository, settings=settings)
    app.state.commission_service = commission_service
    app.state.quote_service = quote_service
    app.state.booking_service = BookingService(
        repository=repository,
        settings=settings,
        quote_service=quote_service,
    )
    app.state.b2b_service = B2BRequestService(
        repository=repository,
        settings=settings,
        commission_service=commission_service,
        quote_service=quote_service,
    )
    app.state.dashboard_service = DashboardService(repository=repository, settings=settings)
    return app, repository


def _login(client: TestClient) -> dict[str, str]:
    response = client.post("/login", json={"admin_token": ADMIN_TOKEN})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _booking_payload(property_type_id: int, rooms: int, **overrides) -> dict:
    payload = {
        **STAY,
        "guest_name": "Asha Rao",
        "phone": "+911234567890",
        "selections": [{"property_type_id": property_type_id, "room_count": rooms}],
        "number_of_adults": 2 * rooms,
    }
    payload.update(overrides)
    return payload


def test_health_and_login(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    assert client.get("/health").json()["status"] == "ok"
    assert client.post("/login", json={"admin_token": "wrong"}).status_code == 401
    assert client.get("/dashboard/occupancy", params={"day": "2026-03-01"}).status_code == 401
    assert client.get(
        "/dashboard/occupancy",
        params={"day": "2026-03-01"},
        headers={"Authorization": "Bearer not-a-session"},
    ).status_code == 401


def test_availability_lists_priciest_first_and_rejects_bad_ranges(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post("/availability", json=STAY)
    assert response.status_code == 200
    rows = response.json()["property_types"]
    assert [row["property_type_id"] for row in rows] == [DOME, COTTAGE, TENT]
    assert [row["available_rooms"] for row in rows] == [2, 3, 5]

    same_day = client.post("/availability", json={"check_in": "2026-03-01", "check_out": "2026-03-01"})
    assert same_day.status_code == 422


def test_quote_charges_extra_occupants(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post(
        "/quote",
        json={
            **STAY,
            "selections": [{"property_type_id": TENT, "room_count": 2}],
            "number_of_adults": 6,
            "advance_paid": "5000",
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["nights"] == 3
    assert body["subtotal"] == "15000.00"
    assert body["due_amount"] == "10000.00"
    assert body["payment_status"] == "partial"


def test_b2b_quote_uses_the_resolved_commission(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post(
        "/quote",
        json={
            **STAY,
            "category": "b2b",
            "agent_id": 1,
            "selections": [{"property_type_id": COTTAGE, "room_count": 1}],
            "number_of_adults": 2,
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["commission_source"] == "agent_and_property"
    assert body["subtotal"] == "8925.00"

    commission = client.get(
        "/agents/1/commission",
        params={"property_type_id": TENT, "booking_date": "2026-03-01"},
    )
    assert commission.status_code == 200
    assert commission.json()["source"] == "agent_default"

    unknown = client.post(
        "/quote",
        json={
            **STAY,
            "category": "b2b",
            "agent_id": 42,
            "selections": [{"property_type_id": COTTAGE, "room_count": 1}],
            "number_of_adults": 2,
        },
    )
    assert unknown.status_code == 400


def test_booking_flow_with_overbooking_conflict(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    headers = _login(client)

    created = client.post("/bookings", json=_booking_payload(DOME, 2))
    assert created.status_code == 201
    booking = created.json()["booking"]
    assert booking["status"] == "confirmed"

    conflict = client.post("/bookings", json=_booking_payload(DOME, 1))
    assert conflict.status_code == 409

    rows = client.post("/availability", json=STAY).json()["property_types"]
    assert DOME not in [row["property_type_id"] for row in rows]

    found = client.get(f"/bookings/{booking['confirmation_number']}")
    assert found.status_code == 200
    assert found.json()["booking_id"] == booking["booking_id"]

    occupancy = client.get("/dashboard/occupancy", params={"day": "2026-03-02"}, headers=headers)
    assert occupancy.status_code == 200
    summary = occupancy.json()["summary"]
    assert summary["booked_rooms"] == 2
    assert summary["total_rooms"] == 10

    cancelled = client.post(f"/bookings/{booking['booking_id']}/cancel", headers=headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    again = client.post(f"/bookings/{booking['booking_id']}/status", json={"status": "checked-in"}, headers=headers)
    assert again.status_code == 409

    assert client.delete(f"/bookings/{booking['booking_id']}", headers=headers).status_code == 204
    assert client.get(f"/bookings/{booking['confirmation_number']}").status_code == 404


def test_update_booking_through_the_api(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    headers = _login(client)

    booking = client.post("/bookings", json=_booking_payload(TENT, 2)).json()["booking"]
    response = client.patch(
        f"/bookings/{booking['booking_id']}",
        json={
            "check_in": "2026-03-01",
            "check_out": "2026-03-02",
            "selections": [{"property_type_id": TENT, "room_count": 5}],
            "number_of_adults": 10,
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["quote"]["subtotal"] == "10000.00"
    assert response.json()["booking"]["rooms"][0]["room_count"] == 5


def test_b2b_request_approval_through_the_api(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    headers = _login(client)

    submitted = client.post(
        "/b2b/requests",
        json={
            **STAY,
            "agent_id": 1,
            "guest_name": "Ravi Kumar",
            "selections": [{"property_type_id": TENT, "room_count": 1}],
            "number_of_adults": 2,
        },
    )
    assert submitted.status_code == 201
    [request] = submitted.json()
    assert request["agent_rate"] == "5280.00"

    listed = client.get("/b2b/requests", params={"status": "pending"}, headers=headers)
    assert [row["request_id"] for row in listed.json()] == [request["request_id"]]

    approved = client.post(f"/b2b/requests/{request['request_id']}/approve", json={}, headers=headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    booking = client.get(f"/bookings/{request['confirmation_number']}")
    assert booking.json()["category"] == "b2b"

    rejected = client.post(
        f"/b2b/requests/{request['request_id']}/reject",
        json={"admin_notes": "duplicate"},
        headers=headers,
    )
    assert rejected.status_code == 409


def test_store_outage_is_reported_not_sold_out(tmp_path, monkeypatch):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)

    def broken_open():
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repository, "_open", broken_open)

    availability = client.post("/availability", json=STAY)
    assert availability.status_code == 503

    booking = client.post("/bookings", json=_booking_payload(TENT, 1))
    assert booking.status_code == 503


def test_occupancy_trend_bounds_and_rows(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    headers = _login(client)
    client.post("/bookings", json=_booking_payload(COTTAGE, 3))

    trend = client.get(
        "/dashboard/occupancy/trend",
        params={"start": "2026-02-28", "days": 5},
        headers=headers,
    )
    assert trend.status_code == 200
    rows = trend.json()
    assert [row["booked_rooms"] for row in rows] == [0, 3, 3, 3, 0]
    assert rows[1]["occupancy_rate"] == 0.3

    too_long = client.get(
        "/dashboard/occupancy/trend",
        params={"start": "2026-02-28", "days": 91},
        headers=headers,
    )
    assert too_long.status_code == 400


def test_staff_endpoints_are_open_without_a_configured_token(tmp_path):
    app, _ = _build_test_app(tmp_path, admin_token="")
    client = TestClient(app)

    assert client.get("/bookings").status_code == 200
    assert client.post("/login", json={"admin_token": "anything"}).status_code == 401


def test_logout_ends_only_the_callers_session(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    first = _login(client)
    second = _login(client)

    assert client.post("/logout", headers=first).status_code == 204
    assert client.get("/bookings", headers=first).status_code == 401
    assert client.get("/bookings", headers=second).status_code == 200


def test_named_rooms_through_the_api(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    def named(*room_ids: str) -> dict:
        return _booking_payload(
            DOME,
            len(room_ids),
            selections=[{"property_type_id": DOME, "room_ids": list(room_ids)}],
        )

    assert client.post("/bookings", json=named("FD1", "FD1")).status_code == 400
    assert client.post("/bookings", json=named("DT1")).status_code == 400

    created = client.post("/bookings", json=named("FD1"))
    assert created.status_code == 201
    assert created.json()["quote"]["subtotal"] == "15000.00"
    assert client.post("/bookings", json=named("FD1")).status_code == 409
    assert client.post("/bookings", json=named("FD2")).status_code == 201
