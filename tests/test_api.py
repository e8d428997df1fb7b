import uuid

import pytest
from fastapi.testclient import TestClient

from xpired.core.config import settings
from xpired.main import create_app
from tests.conftest import WEEK_BEFORE_UTC


@pytest.fixture
def client(runtime, monkeypatch):
    class FakeRedis:
        def ping(self):
            return True

    monkeypatch.setattr("xpired.main.get_redis", lambda url=None: FakeRedis())
    app = create_app(lambda: runtime, metrics_enabled=False)
    with TestClient(app) as client:
        yield client


def _headers(user):
    return {"X-User-Id": str(user.id)}


def _create_passport(client, user, **overrides):
    body = {
        "name": "Passport",
        "expiration_date": "2025-03-10",
        "timezone": "America/New_York",
        "reminders": ["7d", "0d", "bogus"],
    }
    body.update(overrides)
    return client.post("/api/v1/documents", json=body, headers=_headers(user))


class TestIntervals:
    def test_catalog(self, client):
        resp = client.get("/api/v1/reminders/intervals")
        assert resp.status_code == 200
        codes = [i["code"] for i in resp.json()]
        assert codes[0] == "180d" and codes[-1] == "0d"
        assert len(codes) == 10


class TestDocuments:
    def test_create(self, client, user):
        resp = _create_passport(client, user)

        assert resp.status_code == 201
        body = resp.json()
        assert body["expiration_date_display"] == "Mon, 10 Mar, 2025"
        assert [r["code"] for r in body["reminders"]] == ["7d", "0d"]
        schedule = {s["code"]: s for s in body["schedule"]}
        assert schedule["7d"]["scheduled"] is True
        assert schedule["7d"]["fire_at"].startswith("2025-03-03T05:00:00")

    def test_invalid_timezone_is_422(self, client, user):
        resp = _create_passport(client, user, timezone="Moon/Base")
        assert resp.status_code == 422
        assert "timezone" in resp.json()["message"]

    def test_missing_caller(self, client):
        resp = client.post("/api/v1/documents", json={"name": "x", "expiration_date": "2025-03-10"})
        assert resp.status_code == 401

    def test_get_and_list(self, client, user):
        doc_id = _create_passport(client, user).json()["id"]

        assert client.get(f"/api/v1/documents/{doc_id}", headers=_headers(user)).json()["name"] == "Passport"
        listed = client.get("/api/v1/documents", headers=_headers(user)).json()
        assert [d["id"] for d in listed] == [doc_id]

    def test_other_users_document_forbidden(self, client, user, other_user):
        doc_id = _create_passport(client, user).json()["id"]
        assert client.get(f"/api/v1/documents/{doc_id}", headers=_headers(other_user)).status_code == 403

    def test_unknown_document(self, client, user):
        assert client.get(f"/api/v1/documents/{uuid.uuid4()}", headers=_headers(user)).status_code == 404

    def test_patch_expiration(self, client, user, runtime):
        doc_id = _create_passport(client, user).json()["id"]

        resp = client.patch(
            f"/api/v1/documents/{doc_id}",
            json={"expiration_date": "2026-03-10"},
            headers=_headers(user),
        )

        assert resp.status_code == 200
        assert resp.json()["expiration_date_display"] == "Tue, 10 Mar, 2026"
        assert {s["code"] for s in resp.json()["schedule"]} == {"7d", "0d"}

    def test_patch_blank_name_rejected(self, client, user):
        doc_id = _create_passport(client, user).json()["id"]

        resp = client.patch(f"/api/v1/documents/{doc_id}", json={"name": "   "}, headers=_headers(user))

        assert resp.status_code == 422
        assert client.get(f"/api/v1/documents/{doc_id}", headers=_headers(user)).json()["name"] == "Passport"

    def test_patch_name_is_stripped(self, client, user):
        doc_id = _create_passport(client, user).json()["id"]

        resp = client.patch(f"/api/v1/documents/{doc_id}", json={"name": "  Visa  "}, headers=_headers(user))

        assert resp.status_code == 200
        assert resp.json()["name"] == "Visa"

    def test_delete(self, client, user, runtime):
        doc_id = _create_passport(client, user).json()["id"]

        assert client.delete(f"/api/v1/documents/{doc_id}", headers=_headers(user)).status_code == 204
        assert client.get(f"/api/v1/documents/{doc_id}", headers=_headers(user)).status_code == 404
        assert runtime.dispatcher.run_once(WEEK_BEFORE_UTC).leased == 0


class TestReminders:
    def test_list_and_toggle(self, client, user):
        doc_id = _create_passport(client, user).json()["id"]

        resp = client.post(
            f"/api/v1/documents/{doc_id}/reminders/toggle",
            json={"code": "7d", "enabled": False},
            headers=_headers(user),
        )
        assert resp.status_code == 200
        assert resp.json()["enabled"] is False

        reminders = client.get(f"/api/v1/documents/{doc_id}/reminders", headers=_headers(user)).json()
        assert {r["code"]: r["enabled"] for r in reminders} == {"7d": False, "0d": True}

    def test_toggle_unknown_code(self, client, user):
        doc_id = _create_passport(client, user).json()["id"]
        resp = client.post(
            f"/api/v1/documents/{doc_id}/reminders/toggle",
            json={"code": "13d", "enabled": True},
            headers=_headers(user),
        )
        assert resp.status_code == 404

    def test_failed_tasks_empty(self, client):
        resp = client.get("/api/v1/reminders/tasks/failed")
        assert resp.status_code == 200
        assert resp.json() == []


class TestApiKey:
    def test_required(self, client, monkeypatch):
        monkeypatch.setattr(settings, "REQUIRE_API_KEY", True)
        monkeypatch.setattr(settings, "VALID_API_KEYS", ["secret-key"])

        assert client.get("/api/v1/reminders/intervals").status_code == 401
        assert client.get("/api/v1/reminders/intervals", headers={"X-API-Key": "secret-key"}).status_code == 200
        assert client.get(
            "/api/v1/reminders/intervals", headers={"Authorization": "Bearer secret-key"}
        ).status_code == 200


def test_health(client):
    body = client.get("/health").json()
    assert body["database"] == "healthy"
    assert body["redis"] == "healthy"
    assert body["status"] == "healthy"
