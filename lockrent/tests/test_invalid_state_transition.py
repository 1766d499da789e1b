from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from starlette.testclient import TestClient

import lockrent.presentation.routers as routers
from lockrent.main import app
from lockrent.tests.support import FakeClock


@pytest.fixture()
def clock(app_database) -> FakeClock:
    fake = FakeClock()
    app.dependency_overrides[routers.get_clock] = lambda: fake
    yield fake
    app.dependency_overrides.pop(routers.get_clock, None)


def _create_location(client: TestClient, **lockers: int) -> str:
    location_id = f"LOC-{uuid4().hex[:8]}"
    res = client.post("/locations", json={"location_id": location_id, "name": "Test shop", "lockers": lockers})
    assert res.status_code == 201
    return location_id


def _rent(client: TestClient, location_id: str, user_id: str, **extra):
    return client.post(
        "/rentals",
        json={"user_id": user_id, "location_id": location_id, "size_class": "Small", **extra},
    )


def test_rent_end_rent_again_over_http(clock: FakeClock) -> None:
    client = TestClient(app)
    location_id = _create_location(client, Small=1)

    first = _rent(client, location_id, "u1")
    assert first.status_code == 201
    rental = first.json()
    assert rental["status"] == "Active"

    locker = client.get(f"/lockers/{rental['locker_id']}").json()
    assert locker["status"] == "Occupied"
    assert locker["current_rental_id"] == rental["rental_id"]

    # Only unit is taken
    assert _rent(client, location_id, "u2").status_code == 409

    # Every started hour is billed: 2.1 h rounds up to 3 x 2.99, not down to 2
    clock.advance(hours=2.1)
    ended = client.post(f"/rentals/{rental['rental_id']}/end")
    assert ended.status_code == 200
    assert ended.json()["status"] == "Completed"
    assert Decimal(ended.json()["total_price"]) == Decimal("8.97")

    assert client.get(f"/lockers/{rental['locker_id']}").json()["status"] == "Available"
    assert _rent(client, location_id, "u2").status_code == 201


def test_end_rental_twice_returns_409(clock: FakeClock) -> None:
    client = TestClient(app)
    location_id = _create_location(client, Small=1)
    rental_id = _rent(client, location_id, "u1").json()["rental_id"]

    assert client.post(f"/rentals/{rental_id}/end").status_code == 200
    second = client.post(f"/rentals/{rental_id}/end")
    assert second.status_code == 409
    assert "detail" in second.json()

    history = client.get("/users/u1/rentals").json()
    assert history["current"] == []
    assert [r["rental_id"] for r in history["past"]] == [rental_id]


def test_cancel_active_rental_returns_409(clock: FakeClock) -> None:
    client = TestClient(app)
    location_id = _create_location(client, Small=1)
    rental_id = _rent(client, location_id, "u1").json()["rental_id"]

    res = client.post(f"/rentals/{rental_id}/cancel")
    assert res.status_code == 409


def test_held_rental_activate_and_cancel(clock: FakeClock) -> None:
    client = TestClient(app)
    location_id = _create_location(client, Small=1)

    held = _rent(client, location_id, "u1", hold=True).json()
    assert held["status"] == "Pending"
    assert held["locker_id"] is None

    activated = client.post(f"/rentals/{held['rental_id']}/activate")
    assert activated.status_code == 200
    assert activated.json()["locker_id"] is not None

    other = _rent(client, location_id, "u2", hold=True).json()
    assert client.post(f"/rentals/{other['rental_id']}/activate").status_code == 409
    assert client.post(f"/rentals/{other['rental_id']}/cancel").json()["status"] == "Cancelled"


def test_unknown_ids_return_404(clock: FakeClock) -> None:
    client = TestClient(app)

    assert client.post("/rentals/does-not-exist/end").status_code == 404
    assert client.get("/reservations/does-not-exist").status_code == 404
    assert client.get("/lockers/does-not-exist").status_code == 404
    assert client.get("/locations/does-not-exist").status_code == 404
    assert _rent(client, "does-not-exist", "u1").status_code == 404


def test_reservation_flow_over_http(clock: FakeClock) -> None:
    client = TestClient(app)
    location_id = _create_location(client, Small=1)
    today = clock().date()

    past = client.post(
        "/reservations",
        json={"user_id": "u1", "location_id": location_id, "size_class": "Small",
              "dates": [(today - timedelta(days=1)).isoformat()]},
    )
    assert past.status_code == 422

    created = client.post(
        "/reservations",
        json={"user_id": "u1", "location_id": location_id, "size_class": "Small", "dates": [today.isoformat()]},
    )
    assert created.status_code == 201
    reservation_id = created.json()["reservation_id"]

    full = client.post(
        "/reservations",
        json={"user_id": "u2", "location_id": location_id, "size_class": "Small", "dates": [today.isoformat()]},
    )
    assert full.status_code == 409

    # Converting before confirmation is rejected
    assert client.post(f"/reservations/{reservation_id}/convert").status_code == 409

    assert client.post(f"/reservations/{reservation_id}/confirm").json()["status"] == "Confirmed"
    converted = client.post(f"/reservations/{reservation_id}/convert", json={"duration_class": "Hourly"})
    assert converted.status_code == 201
    assert converted.json()["rental_type"] == "reservation"

    reservation = client.get(f"/reservations/{reservation_id}").json()
    assert reservation["status"] == "Converted"
    assert reservation["rental_id"] == converted.json()["rental_id"]
    assert [r["reservation_id"] for r in client.get("/users/u1/reservations").json()] == [reservation_id]


def test_maintenance_and_statistics_over_http(clock: FakeClock) -> None:
    client = TestClient(app)
    location_id = _create_location(client, Small=1, Large=1)
    large_id = f"{location_id}-002"

    assert client.post(f"/lockers/{large_id}/maintenance").json()["status"] == "Maintenance"
    assert client.post(f"/lockers/{large_id}/maintenance").status_code == 409
    availability = client.get(f"/locations/{location_id}/availability/Large").json()
    assert availability["available"] == 0

    assert client.delete(f"/lockers/{large_id}/maintenance").json()["status"] == "Available"

    rental_id = _rent(client, location_id, "u1").json()["rental_id"]
    clock.advance(minutes=20)
    client.post(f"/rentals/{rental_id}/end")

    incremental = client.get("/statistics").json()
    rebuilt = client.post("/statistics/rebuild").json()
    assert incremental["state_hash"] == rebuilt["state_hash"]
    assert rebuilt["counters"]["lockers.total"] == 2
    assert Decimal(rebuilt["total_revenue"]) == Decimal("2.99")

    summary = client.get(f"/locations/{location_id}").json()
    assert summary["available"] == {"Small": 1, "Medium": 0, "Large": 1}
    assert summary["capacity"] == {"Small": 1, "Medium": 0, "Large": 1}
