from __future__ import annotations

import asyncio
import os
import sys

from fastapi.testclient import TestClient

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from seed import MONDAY, add_order, add_team
from tourbook.config import Settings, get_settings
from tourbook.main import app
from tourbook.services.store import get_store, reset_store


def test_store_view_renders_collections() -> None:
    reset_store()
    store = get_store()
    asyncio.run(add_team(store, "Bird Park Crew"))
    asyncio.run(add_order(store, "user-1", [(MONDAY, "TEAM-00001", "08:00", "SRV-1", "Falls")]))

    client = TestClient(app)
    response = client.get("/store")
    assert response.status_code == 200

    body = response.text
    assert "Store Overview" in body
    assert "Bird Park Crew" in body
    assert "ORD-00001" in body
    assert "2025-06-09" in body


def test_empty_store_view() -> None:
    reset_store()

    client = TestClient(app)
    response = client.get("/store")

    assert response.status_code == 200
    assert "The store is empty." in response.text


def test_delete_store_record() -> None:
    reset_store()
    store = get_store()
    team_id = asyncio.run(add_team(store))

    client = TestClient(app)
    response = client.delete(f"/store/teams/{team_id}")
    assert response.status_code == 200
    assert response.json() == {"status": "deleted", "collection": "teams", "record_id": team_id}
    assert asyncio.run(store.get("teams", team_id)) is None

    assert client.delete(f"/store/teams/{team_id}").status_code == 404
    assert client.delete("/store/unknown/abc").status_code == 404


def test_store_view_is_hidden_in_production() -> None:
    reset_store()
    app.dependency_overrides[get_settings] = lambda: Settings(app_env="production")
    try:
        client = TestClient(app)
        assert client.get("/store").status_code == 404
        assert client.delete("/store/teams/TEAM-00001").status_code == 404
    finally:
        app.dependency_overrides.clear()
