"""
Users in range: every located user within radius_m of a center, nearest first.

One SELECT per call. The exact predicate is the truncated haversine distance
(<= radius_m); in front of it sits an index-backed prefilter:
  - PostgreSQL: ST_DWithin on the geography expression covered by ix_user_locations_geog (GiST)
  - SQLite/others: a lat/lon bounding box on ix_user_locations_lat_lon
"""
import logging
from dataclasses import dataclass

from geoalchemy2 import functions as geo_func
from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from theftwatch.core.errors import ValidationError, store_errors
from theftwatch.core.geo import (
    PREFILTER_SLACK,
    bounding_box,
    geography_point,
    truncated_distance_sql,
    validate_coordinates,
)
from theftwatch.models.user_location import UserLocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInRange:
    user_id: str
    distance_meters: int
    delivery_token: str | None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "distance_meters": self.distance_meters,
            "delivery_token": self.delivery_token,
        }


def _prefilter(dialect_name: str, lat: float, lon: float, radius_m: int):
    if dialect_name == "postgresql":
        return geo_func.ST_DWithin(
            geography_point(UserLocation.longitude, UserLocation.latitude),
            geography_point(lon, lat),
            (radius_m + 1) * PREFILTER_SLACK,
        )
    box = bounding_box(lat, lon, radius_m)
    clauses = [UserLocation.latitude.between(box.min_lat, box.max_lat)]
    if box.min_lon is not None:
        clauses.append(UserLocation.longitude.between(box.min_lon, box.max_lon))
    return and_(*clauses)


def find_users_in_range(
    db: Session,
    lat: float,
    lon: float,
    radius_m: int,
    *,
    exclude_user_id: str | None = None,
    verified_only: bool = False,
) -> list[UserInRange]:
    """
    Return located users whose truncated great-circle distance to (lat, lon) is <= radius_m.
    Users without a location never match. Radius 0 matches only coincident points (< 1 m).
    """
    validate_coordinates(lat, lon)
    if radius_m is None or radius_m < 0:
        raise ValidationError("radius_m must be a non-negative number of meters.")
    radius_m = int(radius_m)

    distance = truncated_distance_sql(UserLocation.latitude, UserLocation.longitude, lat, lon).label("distance_meters")
    conditions = [
        UserLocation.latitude.is_not(None),
        UserLocation.longitude.is_not(None),
        _prefilter(db.get_bind().dialect.name, lat, lon, radius_m),
        distance <= radius_m,
    ]
    if verified_only:
        conditions.append(UserLocation.verified.is_(True))
    if exclude_user_id:
        conditions.append(UserLocation.user_id != exclude_user_id)

    stmt = (
        select(UserLocation.user_id, distance, UserLocation.delivery_token)
        .where(*conditions)
        .order_by(distance, UserLocation.user_id)
    )
    with store_errors("range query"):
        rows = db.execute(stmt).all()
    logger.debug("Range query (%s, %s) r=%sm -> %s users", lat, lon, radius_m, len(rows))
    return [UserInRange(user_id=r.user_id, distance_meters=int(r.distance_meters), delivery_token=r.delivery_token) for r in rows]
