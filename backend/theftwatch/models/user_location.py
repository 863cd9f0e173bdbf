"""User location: one row per registered user; the spatial side of the range query.

latitude/longitude: NULL until the user grants location; such users are never alerted.
location: EWKT point derived from latitude/longitude on every write (never client supplied).
delivery_token: push token (APNs/FCM) for out-of-app delivery; realtime delivery needs none.
"""
from sqlalchemy import Boolean, Column, Float, Index, Integer, String, event, false
from sqlalchemy.sql import func

from theftwatch.core.geo import GeoPoint, geography_point, make_point
from theftwatch.db.base import Base
from theftwatch.db.types import UTCDateTime, utcnow


class UserLocation(Base):
    __tablename__ = "user_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    display_name = Column(String(128), nullable=True)
    phone = Column(String(32), nullable=True)
    proof_ref = Column(String(512), nullable=True)  # ID proof object path in the private bucket
    verified = Column(Boolean, nullable=False, default=False, server_default=false())
    delivery_token = Column(String(256), nullable=True)
    delivery_platform = Column(String(16), nullable=False, default="ios", server_default="ios")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location = Column(String(96), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_user_locations_lat_lon", "latitude", "longitude"),
    )

    @property
    def point(self) -> GeoPoint | None:
        return GeoPoint.from_ewkt(self.location)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


# PostGIS only: the range query prefilters with ST_DWithin on this exact expression
Index(
    "ix_user_locations_geog",
    geography_point(UserLocation.longitude, UserLocation.latitude),
    postgresql_using="gist",
).ddl_if(dialect="postgresql")


@event.listens_for(UserLocation, "before_insert")
@event.listens_for(UserLocation, "before_update")
def _derive_location(mapper, connection, target: UserLocation) -> None:
    if target.has_location:
        target.location = make_point(target.longitude, target.latitude).ewkt
    else:
        target.location = None
