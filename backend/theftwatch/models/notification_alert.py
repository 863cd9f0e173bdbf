"""Notification alert: one row per (report, recipient), written only by the fan-out.

distance_meters: truncated great-circle distance recipient -> report at send time.
status: sent (realtime only) | pending (push queued) | failed (push rejected).
read_at: NULL = unread; set when the recipient marks it read.
"""
from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from theftwatch.core.constants import AlertStatus, AlertType
from theftwatch.db.base import Base
from theftwatch.db.types import UTCDateTime, utcnow


class NotificationAlert(Base):
    __tablename__ = "notification_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_user_id = Column(String(64), nullable=False, index=True)
    sender_user_id = Column(String(64), nullable=False)
    message = Column(Text, nullable=False)
    alert_type = Column(String(32), nullable=False, default=AlertType.THEFT_ALERT.value, server_default="theft_alert")
    distance_meters = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default=AlertStatus.SENT.value, server_default="sent")
    read_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("report_id", "recipient_user_id", name="uq_notification_alerts_report_recipient"),
        Index("ix_notification_alerts_recipient_read_created", "recipient_user_id", "read_at", "created_at"),
        Index("ix_notification_alerts_status_created", "status", "created_at"),
    )
