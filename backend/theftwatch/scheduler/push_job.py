"""
Deliver queued theft alerts by push: every minute, find notification_alerts still 'pending'
(recipient had a push token at fan-out time), send them via APNs and record sent/failed.

Only alerts created in the last PUSH window are sent; older ones are stale news and stay pending.
When APNs is not configured the job does nothing and realtime remains the only channel.
"""
import logging
from datetime import timedelta
from typing import Callable

from sqlalchemy.orm import Session

from theftwatch.config import settings
from theftwatch.core.constants import PUSH_BATCH_LIMIT, AlertStatus
from theftwatch.db.session import SessionLocal
from theftwatch.db.types import utcnow
from theftwatch.models.notification_alert import NotificationAlert
from theftwatch.models.user_location import UserLocation
from theftwatch.services.push import apns_configured, push_client, send_theft_alert_push

logger = logging.getLogger(__name__)

# (device_token, alert) -> delivered?
Sender = Callable[[str, NotificationAlert], bool]


def deliver_pending_alerts(db: Session, send: Sender) -> dict[str, int]:
    """Send every recent pending alert once. Returns counts by outcome."""
    cutoff = utcnow() - timedelta(minutes=settings.push_window_minutes)
    pending = (
        db.query(NotificationAlert, UserLocation.delivery_token)
        .join(UserLocation, UserLocation.user_id == NotificationAlert.recipient_user_id)
        .filter(
            NotificationAlert.status == AlertStatus.PENDING.value,
            NotificationAlert.created_at >= cutoff,
        )
        .order_by(NotificationAlert.created_at.asc())
        .limit(PUSH_BATCH_LIMIT)  # cap per run to avoid burst
        .all()
    )
    counts = {"sent": 0, "failed": 0}
    for alert, token in pending:
        if token and send(token, alert):
            alert.status = AlertStatus.SENT.value
            counts["sent"] += 1
        else:
            alert.status = AlertStatus.FAILED.value
            counts["failed"] += 1
    db.commit()
    return counts


def run_push_pending_alerts_job(session_factory: Callable[[], Session] = SessionLocal) -> None:
    if not apns_configured():
        logger.debug("APNs not configured; pending alerts left for realtime delivery")
        return
    db = session_factory()
    try:
        with push_client() as client:
            counts = deliver_pending_alerts(
                db,
                lambda token, alert: send_theft_alert_push(
                    client, token, alert.message, alert.report_id, alert.distance_meters
                ),
            )
        if counts["sent"] or counts["failed"]:
            logger.info("Push job: sent %s alerts, %s failed", counts["sent"], counts["failed"])
    except Exception as e:
        logger.exception("Push job failed: %s", e)
        db.rollback()
    finally:
        db.close()
