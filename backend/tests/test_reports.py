from datetime import datetime, timedelta, timezone

import pytest

from theftwatch.core.errors import AuthorizationError, NotFoundError, ValidationError
from theftwatch.core.geo import GeoPoint
from theftwatch.models import Report
from theftwatch.services import report_service
from theftwatch.services.report_service import ReportSubmission, submit_report

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _submission(**overrides) -> ReportSubmission:
    fields = {"user_id": "alice", "vehicle_no": "ka01ab1234", "lat": 12.9, "lon": 77.6}
    fields.update(overrides)
    return ReportSubmission(**fields)


def test_submit_derives_point_from_lat_lon(db):
    result = submit_report(db, "alice", _submission(), now=T0)

    report = db.get(Report, result.report.id)
    assert report.location == "SRID=4326;POINT(77.6 12.9)"
    assert report.point == GeoPoint(77.6, 12.9)
    assert report.vehicle_no == "KA01AB1234"
    assert report.status == "active"
    assert result.duplicate is False


def test_point_recomputed_on_location_update(db):
    report = submit_report(db, "alice", _submission(), now=T0).report

    report_service.update_report_location(db, "alice", report.id, 13.0, 77.7, now=T0)

    db.expire_all()
    assert db.get(Report, report.id).point == GeoPoint(77.7, 13.0)


def test_point_recomputed_on_raw_attribute_write(db):
    report = submit_report(db, "alice", _submission(), now=T0).report
    report.latitude = 12.95
    report.location = "SRID=4326;POINT(0 0)"
    db.commit()

    db.expire_all()
    assert db.get(Report, report.id).location == "SRID=4326;POINT(77.6 12.95)"


def test_default_expiry_is_two_hours(db):
    report = submit_report(db, "alice", _submission(), now=T0).report
    assert report.expiry_at == T0 + timedelta(hours=2)

    # T+1h: visible to anyone
    assert report_service.get_report(db, report.id, "bob", now=T0 + timedelta(hours=1)).id == report.id
    assert [r.id for r in report_service.list_active_reports(db, now=T0 + timedelta(hours=1))] == [report.id]

    # T+3h: hidden from everyone but the owner
    with pytest.raises(NotFoundError):
        report_service.get_report(db, report.id, "bob", now=T0 + timedelta(hours=3))
    with pytest.raises(NotFoundError):
        report_service.get_report(db, report.id, None, now=T0 + timedelta(hours=3))
    assert report_service.get_report(db, report.id, "alice", now=T0 + timedelta(hours=3)).id == report.id
    assert report_service.list_active_reports(db, now=T0 + timedelta(hours=3)) == []


def test_stolen_vehicle_defaults(db):
    report = submit_report(db, "alice", _submission(category="stolen_vehicle"), now=T0).report
    assert report.radius_m == 5000
    assert report.expiry_at == T0 + timedelta(days=7)


def test_custom_expiry_within_bounds(db):
    report = submit_report(db, "alice", _submission(expiry_hours=12), now=T0).report
    assert report.expiry_at == T0 + timedelta(hours=12)

    with pytest.raises(ValidationError):
        submit_report(db, "alice", _submission(expiry_hours=25), now=T0)
    with pytest.raises(ValidationError):
        submit_report(db, "alice", _submission(expiry_hours=0), now=T0)


@pytest.mark.parametrize(
    "overrides",
    [
        {"lat": 91},
        {"lon": -181},
        {"radius_m": 499},
        {"radius_m": 5001},
        {"vehicle_no": "   "},
        {"category": "bicycle"},
    ],
)
def test_submit_validation(db, overrides):
    with pytest.raises(ValidationError):
        submit_report(db, "alice", _submission(**overrides), now=T0)
    assert db.query(Report).count() == 0


def test_submit_as_someone_else_is_rejected(db):
    with pytest.raises(AuthorizationError):
        submit_report(db, "mallory", _submission(user_id="alice"), now=T0)
    assert db.query(Report).count() == 0


def test_idempotency_key_returns_original(db):
    first = submit_report(db, "alice", _submission(idempotency_key="k1"), now=T0)
    again = submit_report(db, "alice", _submission(idempotency_key="k1"), now=T0 + timedelta(minutes=1))

    assert again.duplicate is True
    assert again.report.id == first.report.id
    assert db.query(Report).count() == 1


def test_same_key_other_owner_is_independent(db):
    submit_report(db, "alice", _submission(idempotency_key="k1"), now=T0)
    other = submit_report(db, "bob", _submission(user_id="bob", idempotency_key="k1"), now=T0)

    assert other.duplicate is False
    assert db.query(Report).count() == 2


def test_without_key_each_submission_is_a_new_report(db):
    submit_report(db, "alice", _submission(), now=T0)
    submit_report(db, "alice", _submission(), now=T0)
    assert db.query(Report).count() == 2


def test_status_update_owner_only(db):
    report = submit_report(db, "alice", _submission(), now=T0).report

    with pytest.raises(AuthorizationError):
        report_service.update_report_status(db, "bob", report.id, "resolved", now=T0)

    updated = report_service.update_report_status(db, "alice", report.id, "resolved", now=T0)
    assert updated.status == "resolved"


def test_status_update_allowed_after_expiry(db):
    report = submit_report(db, "alice", _submission(), now=T0).report
    updated = report_service.update_report_status(db, "alice", report.id, "found", now=T0 + timedelta(days=1))
    assert updated.status == "found"


def test_status_vocabulary(db):
    report = submit_report(db, "alice", _submission(), now=T0).report

    with pytest.raises(ValidationError):
        report_service.update_report_status(db, "alice", report.id, "stolen", now=T0)
    assert report_service.update_report_status(db, "alice", report.id, "pending", now=T0).status == "active"


def test_legacy_status_reads_as_active(db):
    report = submit_report(db, "alice", _submission(), now=T0).report
    report.status = "pending"
    db.commit()

    assert report.canonical_status.value == "active"
    assert report_service.serialize_report(report, now=T0)["status"] == "active"


def test_location_update_owner_only(db):
    report = submit_report(db, "alice", _submission(), now=T0).report
    with pytest.raises(AuthorizationError):
        report_service.update_report_location(db, "bob", report.id, 13.0, 77.7, now=T0)


def test_list_user_reports_includes_expired(db):
    submit_report(db, "alice", _submission(), now=T0 - timedelta(days=2))
    submit_report(db, "alice", _submission(), now=T0)
    submit_report(db, "bob", _submission(user_id="bob"), now=T0)

    rows = report_service.list_user_reports(db, "alice")
    assert len(rows) == 2
    assert all(confirmations == [] for _, confirmations in rows)


def test_list_active_reports_by_category(db):
    submit_report(db, "alice", _submission(), now=T0)
    stolen = submit_report(db, "alice", _submission(category="stolen_vehicle"), now=T0).report

    rows = report_service.list_active_reports(db, now=T0, category="stolen_vehicle")
    assert [r.id for r in rows] == [stolen.id]


def test_serialize_report(db):
    report = submit_report(db, "alice", _submission(photo_ref="report-photos/alice/1.jpg"), now=T0).report

    data = report_service.serialize_report(report, now=T0)
    assert data["location"] == {"type": "Point", "coordinates": [77.6, 12.9]}
    assert data["expired"] is False
    assert data["photo_url"].endswith("/public/report-photos/alice/1.jpg")
    assert report_service.serialize_report(report, now=T0 + timedelta(hours=2))["expired"] is True


def test_serialize_report_leaves_out_owner_internal_columns(db):
    report = submit_report(db, "alice", _submission(idempotency_key="retry-1"), now=T0).report

    data = report_service.serialize_report(report, now=T0)
    assert "idempotency_key" not in data
    assert "alerts_dispatched_at" not in data
