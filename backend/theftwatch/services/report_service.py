"""
Theft reports: submission, owner updates and the time-filtered read paths.

Geometry is never taken from the client; it is derived from latitude/longitude by the
model on every write. Expiry is created_at + hours under the category policy.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from theftwatch.config import settings
from theftwatch.core import policies
from theftwatch.core.constants import (
    ACTIVE_REPORTS_LIMIT,
    CATEGORY_POLICIES,
    DEFAULT_REPORT_STATUS,
    LEGACY_STATUS_ALIASES,
    MIN_EXPIRY_HOURS,
    USER_REPORTS_LIMIT,
    CategoryPolicy,
    ReportCategory,
    ReportStatus,
)
from theftwatch.core.errors import ConflictError, ValidationError, store_errors
from theftwatch.core.geo import validate_coordinates
from theftwatch.db.types import utcnow
from theftwatch.models.confirmation import Confirmation
from theftwatch.models.report import Report
from theftwatch.services.storage import resolve_photo_url

logger = logging.getLogger(__name__)


@dataclass
class ReportSubmission:
    user_id: str
    vehicle_no: str
    lat: float
    lon: float
    category: str = ReportCategory.VEHICLE.value
    description: str | None = None
    photo_ref: str | None = None
    radius_m: int | None = None
    expiry_hours: int | None = None
    alert_message: str | None = None
    vehicle_type: str | None = None
    vehicle_color: str | None = None
    idempotency_key: str | None = None


@dataclass
class SubmitResult:
    report: Report
    duplicate: bool = False


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def category_policy(category: str) -> tuple[ReportCategory, CategoryPolicy]:
    try:
        cat = ReportCategory(category)
    except ValueError:
        allowed = ", ".join(c.value for c in ReportCategory)
        raise ValidationError(f"Unknown category {category!r}; expected one of: {allowed}.") from None
    return cat, CATEGORY_POLICIES[cat]


def parse_status(value: str) -> ReportStatus:
    value = (value or "").strip().lower()
    if value in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[value]
    try:
        return ReportStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ReportStatus)
        raise ValidationError(f"Unknown status {value!r}; expected one of: {allowed}.") from None


def validate_radius(radius_m: int) -> int:
    lo, hi = settings.report_radius_min_m, settings.report_radius_max_m
    if radius_m is None or not lo <= radius_m <= hi:
        raise ValidationError(f"radius_m must be between {lo} and {hi} meters.")
    return int(radius_m)


def _expiry_hours(policy: CategoryPolicy, requested: int | None) -> int:
    hours = policy.default_expiry_hours if requested is None else requested
    if not MIN_EXPIRY_HOURS <= hours <= policy.max_expiry_hours:
        raise ValidationError(
            f"expiry_hours must be between {MIN_EXPIRY_HOURS} and {policy.max_expiry_hours} for this category."
        )
    return int(hours)


def _find_by_idempotency_key(db: Session, user_id: str, key: str, now: datetime) -> Report | None:
    window_start = now - timedelta(hours=settings.idempotency_window_hours)
    return (
        db.query(Report)
        .filter(
            Report.user_id == user_id,
            Report.idempotency_key == key,
            Report.created_at >= window_start,
        )
        .first()
    )


def submit_report(
    db: Session,
    caller_id: str,
    submission: ReportSubmission,
    *,
    now: datetime | None = None,
) -> SubmitResult:
    """
    Validate and persist a report owned by the caller. Commits before returning so the
    fan-out can only ever run against a stored report.

    With an idempotency_key, a repeat submission by the same owner inside the window
    returns the original report (duplicate=True) instead of creating a second one.
    """
    now = now or utcnow()
    policies.require_self(caller_id, submission.user_id, "submit a report")
    vehicle_no = _clean(submission.vehicle_no)
    if not vehicle_no:
        raise ValidationError("vehicle_no is required.")
    validate_coordinates(submission.lat, submission.lon)
    category, policy = category_policy(submission.category)
    radius_m = validate_radius(policy.default_radius_m if submission.radius_m is None else submission.radius_m)
    hours = _expiry_hours(policy, submission.expiry_hours)
    key = _clean(submission.idempotency_key)

    if key:
        existing = _find_by_idempotency_key(db, submission.user_id, key, now)
        if existing is not None:
            logger.info("Duplicate submission for key %s by %s; returning report %s", key, submission.user_id, existing.id)
            return SubmitResult(report=existing, duplicate=True)

    report = Report(
        user_id=submission.user_id,
        category=category.value,
        vehicle_no=vehicle_no.upper(),
        vehicle_type=_clean(submission.vehicle_type),
        vehicle_color=_clean(submission.vehicle_color),
        description=_clean(submission.description),
        photo_ref=_clean(submission.photo_ref),
        latitude=float(submission.lat),
        longitude=float(submission.lon),
        radius_m=radius_m,
        status=DEFAULT_REPORT_STATUS.value,
        alert_message=_clean(submission.alert_message),
        idempotency_key=key,
        created_at=now,
        updated_at=now,
        expiry_at=now + timedelta(hours=hours),
    )
    db.add(report)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # Same key reused outside the window (or a concurrent retry won the race)
        existing = _find_by_idempotency_key(db, submission.user_id, key, now) if key else None
        if existing is not None:
            return SubmitResult(report=existing, duplicate=True)
        raise ConflictError("A report with this idempotency key already exists.") from e
    db.refresh(report)
    logger.info(
        "Report %s created by %s (%s, r=%sm, expires %s)",
        report.id,
        report.user_id,
        report.category,
        report.radius_m,
        report.expiry_at.isoformat(),
    )
    return SubmitResult(report=report)


def get_report(db: Session, report_id: int, caller_id: str | None, *, now: datetime | None = None) -> Report:
    now = now or utcnow()
    with store_errors("report lookup"):
        report = db.get(Report, report_id)
    return policies.require_report_visible(report, caller_id, now)


def _owned_report(db: Session, caller_id: str, report_id: int, now: datetime) -> Report:
    report = policies.require_report_visible(db.get(Report, report_id), caller_id, now)
    policies.require_report_owner(caller_id, report)
    return report


def update_report_status(
    db: Session,
    caller_id: str,
    report_id: int,
    status: str,
    *,
    now: datetime | None = None,
) -> Report:
    """Owner-only. Status is independent of expiry: an expired report may still be resolved."""
    now = now or utcnow()
    new_status = parse_status(status)
    report = _owned_report(db, caller_id, report_id, now)
    if report.status != new_status.value:
        report.status = new_status.value
        db.commit()
        db.refresh(report)
        logger.info("Report %s status -> %s", report.id, new_status.value)
    return report


def update_report_location(
    db: Session,
    caller_id: str,
    report_id: int,
    lat: float,
    lon: float,
    *,
    now: datetime | None = None,
) -> Report:
    """Owner-only. The stored point is recomputed from the new coordinates on flush."""
    now = now or utcnow()
    validate_coordinates(lat, lon)
    report = _owned_report(db, caller_id, report_id, now)
    report.latitude = float(lat)
    report.longitude = float(lon)
    db.commit()
    db.refresh(report)
    return report


def list_active_reports(
    db: Session,
    *,
    now: datetime | None = None,
    category: str | None = None,
    limit: int = ACTIVE_REPORTS_LIMIT,
) -> list[Report]:
    """Unexpired reports, newest first. Expiry is evaluated at query time."""
    now = now or utcnow()
    q = db.query(Report).filter(policies.report_is_active(now))
    if category:
        cat, _ = category_policy(category)
        q = q.filter(Report.category == cat.value)
    with store_errors("active report listing"):
        return q.order_by(Report.created_at.desc(), Report.id.desc()).limit(min(limit, ACTIVE_REPORTS_LIMIT)).all()


def list_user_reports(db: Session, caller_id: str) -> list[tuple[Report, list[Confirmation]]]:
    """The caller's own reports (expired included), each with its confirmations, newest first."""
    with store_errors("user report listing"):
        reports = (
            db.query(Report)
            .filter(Report.user_id == caller_id)
            .order_by(Report.created_at.desc(), Report.id.desc())
            .limit(USER_REPORTS_LIMIT)
            .all()
        )
        if not reports:
            return []
        confirmations = (
            db.query(Confirmation)
            .filter(Confirmation.report_id.in_([r.id for r in reports]))
            .order_by(Confirmation.created_at.desc())
            .all()
        )
    grouped: dict[int, list[Confirmation]] = {}
    for c in confirmations:
        grouped.setdefault(c.report_id, []).append(c)
    return [(r, grouped.get(r.id, [])) for r in reports]


def serialize_report(report: Report, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    point = report.point
    return {
        "id": report.id,
        "user_id": report.user_id,
        "category": report.category,
        "vehicle_no": report.vehicle_no,
        "vehicle_type": report.vehicle_type,
        "vehicle_color": report.vehicle_color,
        "description": report.description,
        "photo_ref": report.photo_ref,
        "photo_url": resolve_photo_url(report.photo_ref),
        "lat": report.latitude,
        "lon": report.longitude,
        "location": {"type": "Point", "coordinates": [point.lon, point.lat]} if point else None,
        "radius_m": report.radius_m,
        "status": report.canonical_status.value,
        "alert_message": report.alert_message,
        "created_at": report.created_at.isoformat() if report.created_at else None,
        "expiry_at": report.expiry_at.isoformat() if report.expiry_at else None,
        "expired": report.is_expired(now),
    }
