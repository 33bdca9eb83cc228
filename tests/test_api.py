from __future__ import annotations

import asyncio
import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from seed import MONDAY, MORNING, add_order, add_team, add_user
from tourbook.config import Settings, get_settings
from tourbook.main import app
from tourbook.services.store import get_store, reset_store

TOKENS = {"client-token": "user-1", "admin-token": "admin-1"}
CLIENT = {"Authorization": "Bearer client-token"}
ADMIN = {"Authorization": "Bearer admin-token"}


def _settings(**overrides) -> Settings:
    return Settings(auth_tokens=TOKENS, **overrides)


@pytest.fixture(autouse=True)
def fresh_app():
    reset_store()
    app.dependency_overrides[get_settings] = lambda: _settings()
    store = get_store()
    asyncio.run(add_user(store, "user-1"))
    asyncio.run(add_user(store, "admin-1", role="ADMIN"))
    yield store
    app.dependency_overrides.clear()
    reset_store()


def test_health_is_public() -> None:
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_bearer_token_resolves_the_caller() -> None:
    client = TestClient(app)

    assert client.get("/api/users/me").status_code == 401
    assert client.get("/api/users/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    response = client.get("/api/users/me", headers=CLIENT)
    assert response.status_code == 200
    assert response.json()["uid"] == "user-1"
    assert response.json()["role"] == "CLIENT"


def test_team_management_is_admin_only() -> None:
    client = TestClient(app)
    payload = {"name": "Falls Crew", "max_people": 8, "operating_hours": [MORNING]}

    assert client.post("/api/teams", json=payload, headers=CLIENT).status_code == 403

    created = client.post("/api/teams", json=payload, headers=ADMIN)
    assert created.status_code == 201
    team_id = created.json()["team_id"]

    slots = client.get(f"/api/teams/{team_id}/slots", params={"date": "2025-06-09"})
    assert slots.status_code == 200
    assert slots.json()["slots"] == ["08:00", "10:00"]


def test_availability_endpoint_reports_occupied_slots(fresh_app) -> None:
    team_id = asyncio.run(add_team(fresh_app))
    client = TestClient(app)

    response = client.get("/api/schedules/availability", params={"date": MONDAY.isoformat()})

    assert response.status_code == 200
    body = response.json()
    assert body["date"] == "2025-06-09"
    assert body["teams"][0]["team_id"] == team_id
    assert body["teams"][0]["available_slots"] == ["08:00", "10:00"]

    bad = client.get("/api/schedules/availability", params={"date": "tomorrow"})
    assert bad.status_code == 400


def test_cancelling_twice_returns_conflict_with_current_status(fresh_app) -> None:
    order_id = asyncio.run(add_order(fresh_app, "user-1", [(MONDAY, "T1", "08:00", "SRV-1", "Falls")]))
    client = TestClient(app)

    first = client.post(f"/api/orders/{order_id}/cancel", headers=CLIENT)
    assert first.status_code == 200
    assert first.json()["status"] == "CANCELLED"

    second = client.post(f"/api/orders/{order_id}/cancel", headers=CLIENT)
    assert second.status_code == 409
    assert second.json()["detail"]["current_status"] == "CANCELLED"


def test_unknown_order_is_404() -> None:
    client = TestClient(app)

    response = client.get("/api/orders/ORD-99999", headers=CLIENT)

    assert response.status_code == 404


def test_webhook_ignores_other_event_types_outside_production() -> None:
    client = TestClient(app)

    response = client.post(
        "/api/payments/webhook", json={"type": "merchant_order", "data": {"id": 123}}
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}


def test_malformed_webhook_body_is_reported_with_200() -> None:
    client = TestClient(app)

    missing_data = client.post("/api/payments/webhook", json={"type": "payment"})
    not_json = client.post(
        "/api/payments/webhook",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )

    for response in (missing_data, not_json):
        assert response.status_code == 200
        assert response.json()["status"] == "error"


def test_webhook_without_signature_is_rejected_in_production() -> None:
    app.dependency_overrides[get_settings] = lambda: _settings(
        app_env="production", mercadopago_webhook_secret="whsec"
    )
    client = TestClient(app)

    response = client.post("/api/payments/webhook", json={"type": "payment", "data": {"id": "9001"}})

    assert response.status_code == 401
