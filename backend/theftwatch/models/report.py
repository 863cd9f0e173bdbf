"""Theft report: owner, identifying text, point + alert radius, status and expiry.

location is always make_point(longitude, latitude); it is recomputed before every insert/update.
Visibility is time-derived: a report is active while now < expiry_at (no stored flag).
status is the canonical ReportStatus vocabulary and is independent of expiry.
alerts_dispatched_at: set in the same transaction as the fan-out batch (exactly-once marker).
idempotency_key: client-generated per submission attempt; unique per owner.
"""
from datetime import datetime

from sqlalchemy import Column, Float, Index, Integer, String, Text, UniqueConstraint, event
from sqlalchemy.sql import func

from theftwatch.core.constants import DEFAULT_REPORT_STATUS, LEGACY_STATUS_ALIASES, ReportCategory, ReportStatus
from theftwatch.core.geo import GeoPoint, geography_point, make_point
from theftwatch.db.base import Base
from theftwatch.db.types import UTCDateTime, utcnow


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    category = Column(String(32), nullable=False, default=ReportCategory.VEHICLE.value, server_default="vehicle")
    vehicle_no = Column(String(64), nullable=False)
    vehicle_type = Column(String(32), nullable=True)
    vehicle_color = Column(String(32), nullable=True)
    description = Column(Text, nullable=True)
    photo_ref = Column(String(512), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    location = Column(String(96), nullable=False)
    radius_m = Column(Integer, nullable=False, default=1000, server_default="1000")
    status = Column(
        String(16),
        nullable=False,
        default=DEFAULT_REPORT_STATUS.value,
        server_default=DEFAULT_REPORT_STATUS.value,
    )
    alert_message = Column(Text, nullable=True)
    idempotency_key = Column(String(128), nullable=True)
    alerts_dispatched_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)
    expiry_at = Column(UTCDateTime, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_reports_user_idempotency_key"),
        Index("ix_reports_user_created", "user_id", "created_at"),
        Index("ix_reports_lat_lon", "latitude", "longitude"),
    )

    @property
    def point(self) -> GeoPoint | None:
        return GeoPoint.from_ewkt(self.location)

    @property
    def canonical_status(self) -> ReportStatus:
        if self.status in LEGACY_STATUS_ALIASES:
            return LEGACY_STATUS_ALIASES[self.status]
        return ReportStatus(self.status)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiry_at


Index(
    "ix_reports_geog",
    geography_point(Report.longitude, Report.latitude),
    postgresql_using="gist",
).ddl_if(dialect="postgresql")


@event.listens_for(Report, "before_insert")
@event.listens_for(Report, "before_update")
def _derive_location(mapper, connection, target: Report) -> None:
    target.location = make_point(target.longitude, target.latitude).ewkt
