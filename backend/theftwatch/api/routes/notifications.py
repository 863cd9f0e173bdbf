"""
Alert inbox API: persisted read state for theft alerts delivered to the caller.

Recipient identified by the X-User-Id header.
Supports: list (with unread filter), mark one read, mark all read.
Alerts are created only by the report fan-out, never through this API.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from theftwatch.api.deps import current_user_id
from theftwatch.core.constants import ALERTS_LIST_DEFAULT_LIMIT, ALERTS_LIST_MAX_LIMIT
from theftwatch.db.session import get_db
from theftwatch.services import notification_service

router = APIRouter()
logger = logging.getLogger(__name__)


# --- List ---


@router.get("/notifications")
def list_notifications(
    db: Session = Depends(get_db),
    recipient_id: str = Depends(current_user_id),
    limit: int = Query(ALERTS_LIST_DEFAULT_LIMIT, ge=1, le=ALERTS_LIST_MAX_LIMIT),
    unread_only: bool = Query(False),
) -> dict[str, Any]:
    """
    List alerts for the caller, newest first.
    Use unread_only=true to only return unread (e.g. for badge count or filtered view).
    """
    return notification_service.list_alerts(db, recipient_id, unread_only=unread_only, limit=limit)


# --- Mark one read ---


@router.patch("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    recipient_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    """Mark a single alert as read (persisted). 404 if it is not addressed to the caller."""
    row = notification_service.mark_alert_read(db, recipient_id, notification_id)
    return {"ok": True, "id": row.id, "read_at": row.read_at.isoformat()}


# --- Mark all read ---


@router.post("/notifications/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db),
    recipient_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    """Mark all alerts for the caller as read (e.g. 'Clear all' in UI)."""
    marked = notification_service.mark_all_read(db, recipient_id)
    return {"ok": True, "recipient_id": recipient_id, "marked_count": marked}
