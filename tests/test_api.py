"""Tests for the FastAPI routes."""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from safecheck.api.server import create_app, wire_services

T0 = 1_700_000_000.0
OWNER = {"X-Owner-Id": "owner-1"}


@pytest.fixture
def app(db_path, transport):
    app = create_app()
    wire_services(app, db_path=db_path, transport=transport)
    return app


@pytest.fixture
def client(app):
    # no context manager: the lifespan (and its background sweep) stays off
    return TestClient(app)


def _create(client, **overrides):
    body = {
        "title": "Evening hike",
        "scheduled_time": T0,
        "escalation_deadline": T0 + 3600,
        "contacts": [
            {"name": "Alice", "phone": "+15550000001"},
            {"name": "Bob", "email": "bob@example.com"},
        ],
    }
    body.update(overrides)
    resp = client.post("/api/checkins/", json=body, headers=OWNER)
    assert resp.status_code == 200, resp.text
    return resp.json()["check_in"]


class TestPublicVerify:
    def test_success_then_already_verified(self, client):
        ci = _create(client)
        resp = client.post(f"/checkins/{ci['id']}/verify", json={"code": ci["verification_code"]})
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["already_verified"] is False

        again = client.post(f"/checkins/{ci['id']}/verify", json={"code": ci["verification_code"]})
        assert again.status_code == 200
        assert again.json()["already_verified"] is True

    def test_wrong_code_is_400(self, client):
        ci = _create(client)
        wrong = "1111" if ci["verification_code"] != "1111" else "2222"
        resp = client.post(f"/checkins/{ci['id']}/verify", json={"code": wrong})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    @pytest.mark.parametrize("body", [{"code": "12"}, {"code": 4821}, {}, {"code": "abcd"}])
    def test_malformed_code_is_400(self, client, body):
        ci = _create(client)
        resp = client.post(f"/checkins/{ci['id']}/verify", json=body)
        assert resp.status_code == 400

    def test_unknown_id_is_404(self, client):
        resp = client.post("/checkins/nope/verify", json={"code": "1234"})
        assert resp.status_code == 404

    def test_escalated_is_410(self, client, transport):
        ci = _create(client, escalation_deadline=T0)
        sweep = client.post("/api/escalations/run")
        assert sweep.status_code == 200
        assert sweep.json()["summary"]["escalated"] == 1
        assert len(transport.sms) == 1

        resp = client.post(f"/checkins/{ci['id']}/verify", json={"code": ci["verification_code"]})
        assert resp.status_code == 410

    def test_cancelled_is_404(self, client):
        ci = _create(client)
        assert client.post(f"/api/checkins/{ci['id']}/cancel", headers=OWNER).status_code == 200
        resp = client.post(f"/checkins/{ci['id']}/verify", json={"code": ci["verification_code"]})
        assert resp.status_code == 404

    def test_cors_preflight(self, client):
        resp = client.options(
            "/checkins/abc/verify",
            headers={
                "Origin": "https://somewhere.example",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] in ("*", "https://somewhere.example")


class TestOwnerRoutes:
    def test_requires_owner_header(self, client):
        assert client.get("/api/checkins/").status_code == 401

    def test_create_list_get(self, client):
        ci = _create(client)
        assert len(ci["verification_code"]) == 4

        listed = client.get("/api/checkins/", headers=OWNER).json()
        assert listed["count"] == 1
        assert "verification_code" not in listed["check_ins"][0]

        got = client.get(f"/api/checkins/{ci['id']}", headers=OWNER)
        assert got.status_code == 200
        assert client.get(f"/api/checkins/{ci['id']}", headers={"X-Owner-Id": "x"}).status_code == 404

    def test_list_invalid_status(self, client):
        assert client.get("/api/checkins/?status=bogus", headers=OWNER).status_code == 400

    def test_create_without_contacts_is_400(self, client):
        resp = client.post("/api/checkins/", json={
            "title": "x", "scheduled_time": T0, "escalation_deadline": T0 + 1, "contacts": [],
        }, headers=OWNER)
        assert resp.status_code == 400
        assert "No emergency contacts" in resp.json()["error"]

    def test_owner_verify(self, client):
        ci = _create(client)
        resp = client.post(
            f"/api/checkins/{ci['id']}/verify",
            json={"code": ci["verification_code"]},
            headers=OWNER,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "acknowledged"

    def test_owner_verify_with_confirmation(self, client, transport):
        ci = _create(client)
        resp = client.post(
            f"/api/checkins/{ci['id']}/verify",
            json={"code": ci["verification_code"], "confirm_phone": "+15559990000"},
            headers=OWNER,
        )
        assert resp.status_code == 200
        assert transport.sms[0][0] == "+15559990000"

    def test_bad_confirm_phone_leaves_check_in_unverified(self, client, store):
        ci = _create(client)
        resp = client.post(
            f"/api/checkins/{ci['id']}/verify",
            json={"code": ci["verification_code"], "confirm_phone": "12"},
            headers=OWNER,
        )
        assert resp.status_code == 400
        assert store.get_by_id(ci["id"]).status.value == "scheduled"

        retry = client.post(
            f"/api/checkins/{ci['id']}/verify",
            json={"code": ci["verification_code"]},
            headers=OWNER,
        )
        assert retry.status_code == 200
        assert store.get_by_id(ci["id"]).status.value == "acknowledged"

    def test_cancel_after_ack_conflicts(self, client):
        ci = _create(client)
        client.post(f"/checkins/{ci['id']}/verify", json={"code": ci["verification_code"]})
        assert client.post(f"/api/checkins/{ci['id']}/cancel", headers=OWNER).status_code == 409

    def test_remind(self, client, transport):
        ci = _create(client)
        resp = client.post(
            f"/api/checkins/{ci['id']}/remind", json={"phone": "5559990000"}, headers=OWNER,
        )
        assert resp.status_code == 200
        assert resp.json()["phone"] == "+15559990000"
        assert ci["verification_code"] in transport.sms[0][1]

    def test_remind_delivery_failure_is_502(self, client, transport):
        ci = _create(client)
        transport.fail.add("+15559990000")
        resp = client.post(
            f"/api/checkins/{ci['id']}/remind", json={"phone": "+15559990000"}, headers=OWNER,
        )
        assert resp.status_code == 502


class TestSweepRoutes:
    def test_due_reminder_sent_by_manual_sweep(self, client, transport):
        now = time.time()
        ci = _create(
            client, scheduled_time=now - 60, escalation_deadline=now + 3600,
            reminder_phone="555-999-0000",
        )
        assert ci["reminder_phone"] == "+15559990000"

        first = client.post("/api/escalations/run").json()
        assert first["summary"]["escalated"] == 0
        assert first["reminders"]["sent"] == 1
        assert transport.sms[0][0] == "+15559990000"
        assert ci["verification_code"] in transport.sms[0][1]

        second = client.post("/api/escalations/run").json()
        assert second["reminders"]["processed"] == 0
        assert len(transport.sms) == 1

    def test_invalid_reminder_phone_is_400(self, client):
        resp = client.post("/api/checkins/", json={
            "title": "x", "scheduled_time": T0, "escalation_deadline": T0 + 1,
            "contacts": [{"name": "A", "email": "a@example.com"}], "reminder_phone": "12",
        }, headers=OWNER)
        assert resp.status_code == 400

    def test_alert_uses_owner_name(self, client, transport):
        _create(client, escalation_deadline=T0, owner_name="Jordan K.")
        client.post("/api/escalations/run")
        assert "Jordan K. failed to check in" in transport.sms[0][1]


class TestContactRoutes:
    def test_crud_and_use_in_checkin(self, client, transport):
        resp = client.post("/api/contacts/", json={"name": "Mum", "phone": "555 123 4567"}, headers=OWNER)
        assert resp.status_code == 200
        contact = resp.json()["contact"]
        assert contact["phone"] == "+15551234567"

        assert client.get("/api/contacts/", headers=OWNER).json()["count"] == 1
        assert client.get(f"/api/contacts/{contact['id']}", headers=OWNER).status_code == 200

        _create(client, escalation_deadline=T0, contacts=[{"contact_id": contact["id"]}])
        client.post("/api/escalations/run")
        assert transport.sms[0][0] == "+15551234567"

        assert client.delete(f"/api/contacts/{contact['id']}", headers=OWNER).status_code == 200
        assert client.delete(f"/api/contacts/{contact['id']}", headers=OWNER).status_code == 404

    def test_invalid_contact_is_400(self, client):
        resp = client.post("/api/contacts/", json={"name": "Nobody"}, headers=OWNER)
        assert resp.status_code == 400


class TestStatusRoutes:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_escalation_status(self, client):
        _create(client)
        data = client.get("/api/escalations/status").json()
        assert data["store"]["by_status"]["scheduled"] == 1
        assert data["scheduler"]["running"] is False
        assert data["dispatcher"]["transport"] == "FakeTransport"
