from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from backoffice.core.config import settings
from backoffice.shared.enums import Env


def test_health(client: TestClient):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_health_api_alias(client: TestClient):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_health_db(client: TestClient):
    r = client.get("/health/db")
    assert r.status_code == 200
    assert r.json() == {"database": "ok"}


def test_request_id_is_echoed(client: TestClient):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_dev_seed_creates_store(client: TestClient):
    r = client.post("/admin/dev/seed", json={"store_code": "hyd01", "store_name": "Banjara Hills"})
    assert r.status_code == 200
    assert r.json()["store_code"] == "HYD01"

    stores = client.get("/api/stores").json()
    assert [s["store_code"] for s in stores] == ["HYD01"]


def test_dev_seed_hidden_outside_dev(client: TestClient, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "env", Env.prod)
    r = client.post("/admin/dev/seed", json={})
    assert r.status_code == 404
