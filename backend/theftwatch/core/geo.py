"""
Great-circle math and point representation shared by the range query and the models.

Distances use the haversine formula on a sphere of radius 6,371,000 m and are
truncated to whole meters, both in Python (haversine_m / distance_m) and in SQL
(truncated_distance_sql), so the two always agree on range membership.
"""
import math
from typing import NamedTuple

from geoalchemy2 import Geography
from geoalchemy2 import functions as geo_func
from sqlalchemy import Integer, cast, func

from theftwatch.core.errors import ValidationError

EARTH_RADIUS_M = 6_371_000
SRID = 4326

# Index prefilters are widened by this factor (spheroid vs sphere, bbox edge effects)
PREFILTER_SLACK = 1.01


class GeoPoint(NamedTuple):
    """Point in (lon, lat) order, like ST_MakePoint."""

    lon: float
    lat: float

    @property
    def ewkt(self) -> str:
        return f"SRID={SRID};POINT({self.lon!r} {self.lat!r})"

    @classmethod
    def from_ewkt(cls, value: str | None) -> "GeoPoint | None":
        if not value:
            return None
        body = value.split(";", 1)[-1].strip()
        if not body.upper().startswith("POINT(") or not body.endswith(")"):
            raise ValueError(f"Not a POINT: {value!r}")
        lon_s, lat_s = body[len("POINT("):-1].split()
        return cls(float(lon_s), float(lat_s))


def make_point(lon: float, lat: float) -> GeoPoint:
    return GeoPoint(float(lon), float(lat))


def validate_coordinates(lat: float, lon: float) -> None:
    if lat is None or lon is None:
        raise ValidationError("Both latitude and longitude are required.")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValidationError("Coordinates must be finite numbers.")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError(f"Latitude {lat} out of range [-90, 90].")
    if not -180.0 <= lon <= 180.0:
        raise ValidationError(f"Longitude {lon} out of range [-180, 180].")


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    dlat = math.radians(lat2 - lat1) / 2
    dlon = math.radians(lon2 - lon1) / 2
    a = math.sin(dlat) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, a)))


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """Whole meters, truncated."""
    return int(math.floor(haversine_m(lat1, lon1, lat2, lon2)))


class BoundingBox(NamedTuple):
    min_lat: float
    max_lat: float
    # None when the box wraps the antimeridian or reaches a pole (no longitude constraint)
    min_lon: float | None
    max_lon: float | None


def bounding_box(lat: float, lon: float, radius_m: float) -> BoundingBox:
    """Lat/lon box that contains every point within radius_m (plus truncation and slack)."""
    reach = (radius_m + 1) * PREFILTER_SLACK
    dlat = math.degrees(reach / EARTH_RADIUS_M)
    min_lat, max_lat = lat - dlat, lat + dlat
    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), None, None)
    # widest longitude span is at the box edge nearest the pole
    edge_lat = max(abs(min_lat), abs(max_lat))
    dlon = math.degrees(reach / (EARTH_RADIUS_M * math.cos(math.radians(edge_lat))))
    min_lon, max_lon = lon - dlon, lon + dlon
    if min_lon < -180.0 or max_lon > 180.0:
        return BoundingBox(min_lat, max_lat, None, None)
    return BoundingBox(min_lat, max_lat, min_lon, max_lon)


def haversine_sql(lat_col, lon_col, lat: float, lon: float):
    """SQL expression for the haversine distance (meters, float) from a fixed center to (lat_col, lon_col)."""
    dlat = func.radians(lat_col - lat) / 2
    dlon = func.radians(lon_col - lon) / 2
    sin_dlat = func.sin(dlat)
    sin_dlon = func.sin(dlon)
    a = sin_dlat * sin_dlat + math.cos(math.radians(lat)) * func.cos(func.radians(lat_col)) * sin_dlon * sin_dlon
    return 2 * EARTH_RADIUS_M * func.asin(func.sqrt(a))


def truncated_distance_sql(lat_col, lon_col, lat: float, lon: float):
    return cast(func.floor(haversine_sql(lat_col, lon_col, lat, lon)), Integer)


def geography_point(lon, lat):
    """ST_SetSRID(ST_MakePoint(lon, lat), 4326)::geography(POINT,4326). Same expression as the GiST indexes."""
    return cast(
        geo_func.ST_SetSRID(geo_func.ST_MakePoint(lon, lat), SRID),
        Geography(geometry_type="POINT", srid=SRID),
    )
