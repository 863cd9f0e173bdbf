"""
Confirmations: community feedback on an active report (seen / false / call_police).

One confirmation per (report, user). Uniqueness is the database constraint's job; a
duplicate insert comes back as IntegrityError and is surfaced as ConflictError.
"""
import logging
from collections import Counter
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from theftwatch.core import policies
from theftwatch.core.constants import ConfirmationType
from theftwatch.core.errors import AuthorizationError, ConflictError, ValidationError, store_errors
from theftwatch.db.types import utcnow
from theftwatch.models.confirmation import Confirmation
from theftwatch.models.report import Report

logger = logging.getLogger(__name__)


def parse_confirmation_type(value: str) -> ConfirmationType:
    try:
        return ConfirmationType((value or "").strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in ConfirmationType)
        raise ValidationError(f"Unknown confirmation type {value!r}; expected one of: {allowed}.") from None


def record_confirmation(
    db: Session,
    caller_id: str,
    report_id: int,
    confirmation_type: str,
    *,
    now: datetime | None = None,
) -> Confirmation:
    now = now or utcnow()
    kind = parse_confirmation_type(confirmation_type)
    if not caller_id:
        raise AuthorizationError("A caller identity is required to confirm a report.")
    policies.require_report_active(db.get(Report, report_id), now)

    row = Confirmation(report_id=report_id, user_id=caller_id, type=kind.value, created_at=now)
    db.add(row)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("You have already confirmed this report.") from e
    db.refresh(row)
    logger.info("Confirmation %s on report %s by %s", kind.value, report_id, caller_id)
    return row


def list_confirmations(db: Session, report_id: int, *, now: datetime | None = None) -> list[Confirmation]:
    """Confirmations are readable while their report is active."""
    now = now or utcnow()
    with store_errors("confirmation listing"):
        return (
            db.query(Confirmation)
            .filter(Confirmation.report_id == report_id, policies.confirmation_readable(now))
            .order_by(Confirmation.created_at.desc(), Confirmation.id.desc())
            .all()
        )


def summarize(confirmations: list[Confirmation]) -> dict[str, int]:
    counts = Counter(c.type for c in confirmations)
    return {t.value: counts.get(t.value, 0) for t in ConfirmationType}


def serialize_confirmation(row: Confirmation) -> dict:
    return {
        "id": row.id,
        "report_id": row.report_id,
        "user_id": row.user_id,
        "type": row.type,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
