import base64
from datetime import timedelta

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from theftwatch.db.types import utcnow
from theftwatch.models import NotificationAlert
from theftwatch.scheduler import push_job
from theftwatch.services import push
from theftwatch.services.fanout import submit_and_notify
from theftwatch.services.report_service import ReportSubmission


@pytest.fixture
def pending(db, add_user):
    add_user("ios-user", 12.901, 77.6, token="good-token")
    add_user("dead-token", 12.902, 77.6, token="bad-token")
    add_user("realtime-only", 12.903, 77.6)
    submit_and_notify(db, "alice", ReportSubmission(user_id="alice", vehicle_no="KA01AB1234", lat=12.9, lon=77.6))


def _statuses(db):
    db.expire_all()
    return {a.recipient_user_id: a.status for a in db.query(NotificationAlert).all()}


def test_delivers_pending_and_records_outcome(db, pending):
    sent = []

    def send(token, alert):
        sent.append((token, alert.recipient_user_id))
        return token == "good-token"

    counts = push_job.deliver_pending_alerts(db, send)

    assert counts == {"sent": 1, "failed": 1}
    assert sorted(sent) == [("bad-token", "dead-token"), ("good-token", "ios-user")]
    assert _statuses(db) == {"ios-user": "sent", "dead-token": "failed", "realtime-only": "sent"}

    # nothing left to send on the next run
    assert push_job.deliver_pending_alerts(db, send) == {"sent": 0, "failed": 0}


def test_stale_alerts_are_left_pending(db, pending):
    for alert in db.query(NotificationAlert).all():
        alert.created_at = utcnow() - timedelta(hours=1)
    db.commit()

    assert push_job.deliver_pending_alerts(db, lambda token, alert: True) == {"sent": 0, "failed": 0}
    assert _statuses(db)["ios-user"] == "pending"


def test_job_is_noop_without_apns(session_factory, pending, monkeypatch):
    monkeypatch.setattr(push_job, "apns_configured", lambda: False)

    def must_not_open():
        raise AssertionError("session opened")

    push_job.run_push_pending_alerts_job(session_factory=must_not_open)


def test_job_sends_through_apns_client(db, session_factory, pending, monkeypatch):
    calls = []
    monkeypatch.setattr(push_job, "apns_configured", lambda: True)

    def fake_send(client, token, message, report_id, distance_meters):
        calls.append((token, distance_meters))
        return True

    monkeypatch.setattr(push_job, "send_theft_alert_push", fake_send)

    push_job.run_push_pending_alerts_job(session_factory=session_factory)

    assert sorted(calls) == [("bad-token", 222), ("good-token", 111)]
    assert set(_statuses(db).values()) == {"sent"}


def test_theft_alert_title_uses_distance(monkeypatch):
    captured = {}

    def fake_send_apns(client, device_token, title, body, data=None):
        captured.update(title=title, body=body, data=data)
        return True

    monkeypatch.setattr(push, "send_apns", fake_send_apns)

    assert push.send_theft_alert_push(None, "tok", "THEFT ALERT: X", 7, 1500)
    assert captured == {"title": "Theft alert 1.5 km away", "body": "THEFT ALERT: X", "data": {"report_id": 7}}
    push.send_theft_alert_push(None, "tok", "THEFT ALERT: X", 7, 350)
    assert captured["title"] == "Theft alert 350 m away"


def test_send_apns_skips_when_unconfigured(monkeypatch):
    monkeypatch.setattr(push.settings, "apns_bundle_id", "")
    assert push.send_apns(None, "tok", "t", "b") is False


@pytest.fixture
def apns_settings(monkeypatch):
    key = ec.generate_private_key(ec.SECP256R1())
    pem = key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    )
    monkeypatch.setattr(push.settings, "apns_key_id", "KEY1")
    monkeypatch.setattr(push.settings, "apns_team_id", "TEAM1")
    monkeypatch.setattr(push.settings, "apns_bundle_id", "com.example.theftwatch")
    monkeypatch.setattr(push.settings, "apns_key_p8_base64", base64.b64encode(pem).decode())
    monkeypatch.setattr(push.settings, "apns_key_p8_path", "")
    push.forget_provider_token()
    yield key
    push.forget_provider_token()


def test_provider_token_is_reused_until_stale(apns_settings):
    first = push._provider_jwt(now=1_000_000)
    assert push._provider_jwt(now=1_000_000 + 60) == first

    claims = jwt.decode(first, apns_settings.public_key(), algorithms=["ES256"])
    assert claims == {"iss": "TEAM1", "iat": 1_000_000}
    assert jwt.get_unverified_header(first)["kid"] == "KEY1"

    later = push._provider_jwt(now=1_000_000 + push.PROVIDER_TOKEN_TTL_SECONDS)
    assert later != first


def test_bad_base64_key_means_no_token(apns_settings, monkeypatch):
    monkeypatch.setattr(push.settings, "apns_key_p8_base64", "not base64!")
    assert push._provider_jwt() is None


def test_expired_provider_token_reply_drops_cached_token(apns_settings):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(403, json={"reason": "ExpiredProviderToken"})

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        assert push.send_apns(client, "device-token", "t", "b") is False

    assert push._provider_token is None
    (request,) = requests
    assert request.url.path == "/3/device/device-token"
    assert request.headers["apns-topic"] == "com.example.theftwatch"
    assert request.headers["authorization"].startswith("bearer ")


def test_other_rejections_keep_cached_token(apns_settings):
    def handler(request):
        return httpx.Response(400, json={"reason": "BadDeviceToken"})

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        assert push.send_apns(client, "device-token", "t", "b") is False

    assert push._provider_token is not None
