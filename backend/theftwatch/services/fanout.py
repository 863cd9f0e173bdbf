"""
Notification fan-out: one alert per user in range of a newly stored report.

Runs after the report commit. The batch of alerts and the report's dispatch marker are
written in one transaction, so a retried fan-out for the same report writes nothing new.
Recipients that already hold an alert for the report are skipped, and the
(report_id, recipient_user_id) unique constraint backs that up against concurrent retries.

Range query and insert are not isolated from each other: a user whose location lands
between the two may be missed. Delivery is best-effort by design of the store access.
"""
import logging
from datetime import datetime

from sqlalchemy import func, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from theftwatch.config import settings
from theftwatch.core.constants import CATEGORY_POLICIES, AlertStatus, ReportCategory
from theftwatch.db.types import utcnow
from theftwatch.models.notification_alert import NotificationAlert
from theftwatch.models.report import Report
from theftwatch.services.range_query import UserInRange, find_users_in_range
from theftwatch.services.report_service import ReportSubmission, SubmitResult, submit_report

logger = logging.getLogger(__name__)


def alert_message_for(report: Report) -> str:
    if report.alert_message:
        return report.alert_message
    policy = CATEGORY_POLICIES[ReportCategory(report.category)]
    return policy.message_template.format(
        vehicle_no=report.vehicle_no,
        radius_km=f"{report.radius_m / 1000:g}",
    )


def build_alerts(report: Report, recipients: list[UserInRange], now: datetime) -> list[NotificationAlert]:
    policy = CATEGORY_POLICIES[ReportCategory(report.category)]
    message = alert_message_for(report)
    return [
        NotificationAlert(
            report_id=report.id,
            recipient_user_id=r.user_id,
            sender_user_id=report.user_id,
            message=message,
            alert_type=policy.alert_type.value,
            distance_meters=r.distance_meters,
            # Push-capable recipients are queued for the push job; everyone gets realtime
            status=AlertStatus.PENDING.value if r.delivery_token else AlertStatus.SENT.value,
            created_at=now,
            updated_at=now,
        )
        for r in recipients
    ]


def count_alerts(db: Session, report_id: int) -> int:
    return db.query(func.count(NotificationAlert.id)).filter(NotificationAlert.report_id == report_id).scalar() or 0


def fan_out_report_alerts(
    db: Session,
    report: Report,
    *,
    verified_only: bool | None = None,
    now: datetime | None = None,
) -> int:
    """
    Write alerts for every eligible user in range of the report (owner excluded).
    Returns the number of alerts that exist for the report afterwards; 0 is a normal outcome.
    Raises on store failure; the report itself is already committed and is never rolled back here.
    """
    if report.id is None:
        raise ValueError("fan_out_report_alerts requires a persisted report")
    now = now or utcnow()
    if verified_only is None:
        verified_only = settings.fanout_verified_only

    if report.alerts_dispatched_at is not None:
        existing = count_alerts(db, report.id)
        logger.info("Report %s already dispatched at %s (%s alerts); skipping", report.id, report.alerts_dispatched_at, existing)
        return existing

    recipients = find_users_in_range(
        db,
        report.latitude,
        report.longitude,
        report.radius_m,
        exclude_user_id=report.user_id,
        verified_only=verified_only,
    )
    already = {
        rid
        for (rid,) in db.query(NotificationAlert.recipient_user_id).filter(NotificationAlert.report_id == report.id).all()
    }
    fresh = [r for r in recipients if r.user_id not in already]
    alerts = build_alerts(report, fresh, now)

    db.add_all(alerts)
    report.alerts_dispatched_at = now
    try:
        db.commit()
    except IntegrityError:
        # A concurrent fan-out for the same report got there first; its batch stands.
        db.rollback()
        logger.warning("Fan-out for report %s lost a race; keeping the committed batch", report.id)
        return count_alerts(db, report.id)

    total = len(already) + len(alerts)
    logger.info(
        "Fan-out for report %s: %s new alerts (%s in range, r=%sm)",
        report.id,
        len(alerts),
        len(recipients),
        report.radius_m,
    )
    return total


def _committed_values(report: Report) -> dict:
    return {attr.key: getattr(report, attr.key) for attr in inspect(report).mapper.column_attrs}


def _restore_detached(db: Session, report: Report, values: dict) -> None:
    """Detach the report and put back its committed values so it can be read without the store."""
    db.expunge(report)
    for key, value in values.items():
        set_committed_value(report, key, value)


def submit_and_notify(
    db: Session,
    caller_id: str,
    submission: ReportSubmission,
    *,
    now: datetime | None = None,
) -> tuple[SubmitResult, int]:
    """
    Store the report, then fan out. Validation/authorization errors block the write and
    propagate; any fan-out failure is logged and reported as 0 alerts sent.
    A duplicate submission (same idempotency key) does not fan out again.

    On failure the returned report is detached and carries its committed values, so the
    response can still be built while the store is unreachable.
    """
    result = submit_report(db, caller_id, submission, now=now)
    committed = _committed_values(result.report)
    try:
        alerts_sent = fan_out_report_alerts(db, result.report, now=now)
    except Exception as e:
        db.rollback()
        _restore_detached(db, result.report, committed)
        logger.warning("Fan-out for report %s failed: %s", committed["id"], e, exc_info=True)
        alerts_sent = 0
    return result, alerts_sent
