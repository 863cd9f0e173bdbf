from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from theftwatch.models import NotificationAlert
from theftwatch.services import fanout


def _h(user_id):
    return {"X-User-Id": user_id}


def _report_body(**overrides):
    body = {"user_id": "alice", "vehicle_no": "ka01ab1234", "lat": 12.90, "lon": 77.60, "radius_m": 2000}
    body.update(overrides)
    return body


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_identity_header_required(client):
    assert client.post("/reports", json=_report_body()).status_code == 401
    assert client.get("/notifications").status_code == 401


def test_create_report_and_fan_out(client, add_user):
    add_user("bob", 12.91, 77.60)
    add_user("carol")

    resp = client.post("/reports", json=_report_body(), headers=_h("alice"))

    assert resp.status_code == 201
    data = resp.json()
    assert data["alerts_sent"] == 1
    assert data["duplicate"] is False
    report = data["report"]
    assert report["vehicle_no"] == "KA01AB1234"
    assert report["status"] == "active"
    assert report["location"] == {"type": "Point", "coordinates": [77.6, 12.9]}

    inbox = client.get("/notifications", headers=_h("bob")).json()
    assert inbox["unread_count"] == 1
    assert inbox["notifications"][0]["distance_meters"] == 1111
    assert client.get("/notifications", headers=_h("carol")).json()["notifications"] == []


def test_geometry_in_body_is_ignored(client):
    resp = client.post(
        "/reports",
        json=_report_body(location="SRID=4326;POINT(0 0)"),
        headers=_h("alice"),
    )
    assert resp.status_code == 201
    assert resp.json()["report"]["location"]["coordinates"] == [77.6, 12.9]


def test_create_report_errors(client):
    assert client.post("/reports", json=_report_body(), headers=_h("mallory")).status_code == 403

    resp = client.post("/reports", json=_report_body(radius_m=100), headers=_h("alice"))
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"
    assert resp.json()["retryable"] is False


def test_idempotent_retry(client, add_user):
    add_user("bob", 12.91, 77.60)
    body = _report_body(idempotency_key="attempt-1")

    first = client.post("/reports", json=body, headers=_h("alice")).json()
    second = client.post("/reports", json=body, headers=_h("alice")).json()

    assert second["duplicate"] is True
    assert second["report"]["id"] == first["report"]["id"]
    assert client.get("/notifications", headers=_h("bob")).json()["unread_count"] == 1


def test_report_lifecycle(client):
    report_id = client.post("/reports", json=_report_body(), headers=_h("alice")).json()["report"]["id"]

    assert client.get(f"/reports/{report_id}").status_code == 200
    assert client.get("/reports/active").json()["count"] == 1

    resp = client.patch(f"/reports/{report_id}/status", json={"status": "found"}, headers=_h("bob"))
    assert resp.status_code == 403
    resp = client.patch(f"/reports/{report_id}/status", json={"status": "found"}, headers=_h("alice"))
    assert resp.json()["status"] == "found"

    resp = client.patch(f"/reports/{report_id}/location", json={"lat": 13.0, "lon": 77.7}, headers=_h("alice"))
    assert resp.json()["location"]["coordinates"] == [77.7, 13.0]

    assert client.get("/reports/999999").status_code == 404


def test_confirmations(client):
    report_id = client.post("/reports", json=_report_body(), headers=_h("alice")).json()["report"]["id"]

    resp = client.post(f"/reports/{report_id}/confirmations", json={"type": "seen"}, headers=_h("bob"))
    assert resp.status_code == 201
    resp = client.post(f"/reports/{report_id}/confirmations", json={"type": "false"}, headers=_h("bob"))
    assert resp.status_code == 409

    listing = client.get(f"/reports/{report_id}/confirmations").json()
    assert listing["counts"] == {"seen": 1, "false": 0, "call_police": 0}

    mine = client.get("/reports/mine", headers=_h("alice")).json()
    assert mine["reports"][0]["confirmation_counts"]["seen"] == 1


def test_notifications_read_state(client, db, add_user):
    add_user("bob", 12.91, 77.60)
    client.post("/reports", json=_report_body(), headers=_h("alice"))
    alert_id = db.query(NotificationAlert).one().id

    assert client.patch(f"/notifications/{alert_id}/read", headers=_h("carol")).status_code == 404
    resp = client.patch(f"/notifications/{alert_id}/read", headers=_h("bob"))
    assert resp.json()["ok"] is True

    resp = client.post("/notifications/mark-all-read", headers=_h("bob"))
    assert resp.json()["marked_count"] == 0


def test_users_in_range_excludes_caller(client, add_user):
    add_user("me", 0, 0)
    add_user("east", 0, 0.009)

    resp = client.get("/users/in-range", params={"lat": 0, "lon": 0, "radius_m": 1000}, headers=_h("me"))
    assert resp.json()["users"] == [{"user_id": "east", "distance_meters": 1000, "delivery_token": None}]

    resp = client.get("/users/in-range", params={"lat": 0, "lon": 0, "radius_m": 999}, headers=_h("me"))
    assert resp.json()["count"] == 0


def test_profile_and_push_registration(client):
    assert client.get("/profile", headers=_h("bob")).status_code == 404

    client.put("/profile", json={"display_name": "Bob"}, headers=_h("bob"))
    client.patch("/profile/location", json={"lat": 12.9, "lon": 77.6}, headers=_h("bob"))
    resp = client.post("/push/register", json={"device_token": "abc", "platform": "ios"}, headers=_h("bob"))
    assert resp.json()["ok"] is True

    profile = client.get("/profile", headers=_h("bob")).json()
    assert profile["display_name"] == "Bob"
    assert profile["has_location"] is True
    assert profile["push_registered"] is True

    assert client.delete("/profile/location", headers=_h("bob")).json()["has_location"] is False


def test_admin_verification_requires_secret(client):
    client.put("/profile", json={}, headers=_h("bob"))

    assert client.patch("/admin/users/bob/verified", json={"verified": True}).status_code == 401
    resp = client.patch(
        "/admin/users/bob/verified",
        json={"verified": True},
        headers={"X-Admin-Secret": "test-admin-secret"},
    )
    assert resp.json()["verified"] is True


def test_storage_verify(client):
    from theftwatch.services.storage import create_signed_url

    token = create_signed_url("evidence", "u1/p.jpg").split("token=")[1]
    assert client.get("/storage/verify", params={"token": token}).json() == {"bucket": "evidence", "path": "u1/p.jpg"}
    assert client.get("/storage/verify", params={"token": "junk"}).status_code == 403


def test_report_stored_during_fan_out_outage_is_still_201(client, add_user, monkeypatch):
    add_user("bob", 12.91, 77.60)

    def closed(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    def range_query_down(*args, **kwargs):
        monkeypatch.setattr(Session, "execute", closed)
        closed()

    monkeypatch.setattr(fanout, "find_users_in_range", range_query_down)

    resp = client.post("/reports", json=_report_body(), headers=_h("alice"))

    assert resp.status_code == 201
    data = resp.json()
    assert data["alerts_sent"] == 0
    assert data["report"]["id"] is not None
    assert data["report"]["vehicle_no"] == "KA01AB1234"

    monkeypatch.undo()
    assert client.get(f"/reports/{data['report']['id']}").status_code == 200
