"""
Alert inbox for a recipient: list (with unread filter and report summary), mark one read, mark all read.
Every query is scoped to recipient_user_id == caller.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from theftwatch.core import policies
from theftwatch.core.constants import ALERTS_LIST_MAX_LIMIT
from theftwatch.core.errors import NotFoundError, store_errors
from theftwatch.db.types import utcnow
from theftwatch.models.notification_alert import NotificationAlert
from theftwatch.models.report import Report

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def list_alerts(db: Session, recipient_id: str, *, unread_only: bool = False, limit: int = 80) -> dict[str, Any]:
    """Newest first, plus the unread count (for badges) and a summary of each alert's report."""
    limit = max(1, min(limit, ALERTS_LIST_MAX_LIMIT))
    with store_errors("alert listing"):
        q = db.query(NotificationAlert).filter(policies.alert_readable_by(recipient_id))
        if unread_only:
            q = q.filter(NotificationAlert.read_at.is_(None))
        rows = q.order_by(NotificationAlert.created_at.desc(), NotificationAlert.id.desc()).limit(limit).all()
        unread_count = (
            db.query(NotificationAlert)
            .filter(policies.alert_readable_by(recipient_id), NotificationAlert.read_at.is_(None))
            .count()
        )
        report_ids = {r.report_id for r in rows}
        reports = {
            rep.id: rep
            for rep in (db.query(Report).filter(Report.id.in_(report_ids)).all() if report_ids else [])
        }
    return {
        "notifications": [serialize_alert(r, reports.get(r.report_id)) for r in rows],
        "unread_count": unread_count,
    }


def serialize_alert(row: NotificationAlert, report: Report | None = None) -> dict[str, Any]:
    return {
        "id": row.id,
        "report_id": row.report_id,
        "sender_user_id": row.sender_user_id,
        "message": row.message,
        "alert_type": row.alert_type,
        "distance_meters": row.distance_meters,
        "status": row.status,
        "read": row.read_at is not None,
        "read_at": _iso(row.read_at),
        "created_at": _iso(row.created_at),
        "report": (
            {
                "id": report.id,
                "vehicle_no": report.vehicle_no,
                "lat": report.latitude,
                "lon": report.longitude,
                "status": report.canonical_status.value,
            }
            if report is not None
            else None
        ),
    }


def mark_alert_read(db: Session, recipient_id: str, alert_id: int, *, now: datetime | None = None) -> NotificationAlert:
    """Only the recipient may mark an alert read. Marking twice keeps the first read_at."""
    row = (
        db.query(NotificationAlert)
        .filter(NotificationAlert.id == alert_id, policies.alert_readable_by(recipient_id))
        .first()
    )
    if row is None:
        raise NotFoundError("Notification not found.")
    if row.read_at is None:
        row.read_at = now or utcnow()
        db.commit()
        db.refresh(row)
    return row


def mark_all_read(db: Session, recipient_id: str, *, now: datetime | None = None) -> int:
    """Mark every unread alert of the recipient read; returns how many changed."""
    now = now or utcnow()
    rows = (
        db.query(NotificationAlert)
        .filter(policies.alert_readable_by(recipient_id), NotificationAlert.read_at.is_(None))
        .all()
    )
    for row in rows:
        row.read_at = now
    db.commit()
    logger.debug("Marked %s alerts read for %s", len(rows), recipient_id)
    return len(rows)
