from fastapi.testclient import TestClient

import seoteric.api.health as health_api
import seoteric.core.database as database
from seoteric.main import app

client = TestClient(app)


class FakeInspector:
    def __init__(self, tables):
        self.tables = set(tables)

    def has_table(self, name):
        return name in self.tables


def test_healthz_always_ok():
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_ok_against_test_database():
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_reports_missing_tables(monkeypatch):
    monkeypatch.setattr(health_api, "inspect", lambda engine: FakeInspector(["app_users", "sites"]))

    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert "usage_buckets" in resp.json()["detail"]


def test_readyz_handles_db_down(monkeypatch):
    def boom():
        raise ValueError("DATABASE_URL is not configured")

    monkeypatch.setattr(database, "get_engine", boom)

    assert database.check_connection() is False
    resp = client.get("/readyz")
    body = resp.json()
    assert resp.status_code == 503
    assert body.get("status") == "error"
    assert "database" in body.get("detail", "")
