"""
Row-level access rules, applied at the data access boundary by every service.

Each rule is either a SQL predicate (for listing queries) or a check that raises
AuthorizationError / NotFoundError (for single-row reads and writes):

  user_locations       read/write own row only
  reports              read: unexpired, or own; insert/update: owner only
  confirmations        read: report unexpired; insert: as yourself, on an unexpired report
  notification_alerts  read/update: recipient only; insert: fan-out only (as the report owner)
"""
from datetime import datetime

from sqlalchemy import and_, exists, or_

from theftwatch.core.errors import AuthorizationError, NotFoundError
from theftwatch.models.confirmation import Confirmation
from theftwatch.models.notification_alert import NotificationAlert
from theftwatch.models.report import Report


def report_is_active(now: datetime):
    return Report.expiry_at > now


def report_readable_by(caller_id: str | None, now: datetime):
    if not caller_id:
        return report_is_active(now)
    return or_(report_is_active(now), Report.user_id == caller_id)


def confirmation_readable(now: datetime):
    return exists().where(and_(Report.id == Confirmation.report_id, Report.expiry_at > now))


def alert_readable_by(caller_id: str):
    return NotificationAlert.recipient_user_id == caller_id


def require_self(caller_id: str, asserted_user_id: str, what: str) -> None:
    """The caller may only act as themselves."""
    if not caller_id or caller_id != asserted_user_id:
        raise AuthorizationError(f"Caller may not {what} on behalf of another user.")


def require_report_owner(caller_id: str, report: Report) -> None:
    if report.user_id != caller_id:
        raise AuthorizationError("Only the report owner may modify this report.")


def require_report_visible(report: Report | None, caller_id: str | None, now: datetime) -> Report:
    """Expired reports are hidden from everyone but their owner."""
    if report is None:
        raise NotFoundError("Report not found.")
    if report.is_expired(now) and report.user_id != caller_id:
        raise NotFoundError("Report not found.")
    return report


def require_report_active(report: Report | None, now: datetime) -> Report:
    if report is None or report.is_expired(now):
        raise NotFoundError("Report not found or no longer active.")
    return report


def event_visible(table: str, record: dict, now: datetime) -> bool:
    """Realtime rows follow the same read rules as queries (recipient filters are enforced on subscribe)."""
    if table == "reports":
        expiry_at = record.get("expiry_at")
        return expiry_at is not None and expiry_at > now
    return True
