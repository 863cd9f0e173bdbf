"""Community confirmation of a report: one per (report, user), never mutated."""
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from theftwatch.db.base import Base
from theftwatch.db.types import UTCDateTime, utcnow


class Confirmation(Base):
    __tablename__ = "confirmations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    type = Column(String(16), nullable=False)  # seen | false | call_police
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("report_id", "user_id", name="uq_confirmations_report_user"),
    )
