"""
Profiles (user_locations rows): create/update, location refresh, push token, verification.
"""
import logging

from sqlalchemy.orm import Session

from theftwatch.core.errors import NotFoundError, ValidationError, store_errors
from theftwatch.core.geo import validate_coordinates
from theftwatch.models.user_location import UserLocation
from theftwatch.services.storage import resolve_photo_url

logger = logging.getLogger(__name__)

DELIVERY_PLATFORMS = ("ios", "android")


def get_profile(db: Session, user_id: str) -> UserLocation | None:
    with store_errors("profile lookup"):
        return db.query(UserLocation).filter(UserLocation.user_id == user_id).first()


def _get_or_create(db: Session, user_id: str) -> UserLocation:
    row = get_profile(db, user_id)
    if row is None:
        row = UserLocation(user_id=user_id, verified=False)
        db.add(row)
    return row


def upsert_profile(
    db: Session,
    user_id: str,
    *,
    display_name: str | None = None,
    phone: str | None = None,
    proof_ref: str | None = None,
) -> UserLocation:
    """Create the caller's profile on first call; later calls update the given fields only."""
    row = _get_or_create(db, user_id)
    if display_name is not None:
        row.display_name = display_name.strip() or None
    if phone is not None:
        row.phone = phone.strip() or None
    if proof_ref is not None:
        row.proof_ref = proof_ref.strip() or None
    db.commit()
    db.refresh(row)
    return row


def update_location(db: Session, user_id: str, lat: float, lon: float) -> UserLocation:
    """Store the caller's current coordinates; the point is derived on flush."""
    validate_coordinates(lat, lon)
    row = _get_or_create(db, user_id)
    row.latitude = float(lat)
    row.longitude = float(lon)
    db.commit()
    db.refresh(row)
    logger.debug("Location updated for %s", user_id)
    return row


def clear_location(db: Session, user_id: str) -> UserLocation:
    """Withdraw location sharing: the user stops matching range queries."""
    row = get_profile(db, user_id)
    if row is None:
        raise NotFoundError("Profile not found.")
    row.latitude = None
    row.longitude = None
    db.commit()
    db.refresh(row)
    return row


def register_delivery_token(db: Session, user_id: str, token: str, platform: str = "ios") -> UserLocation:
    """Idempotent: registering the same token again changes nothing."""
    token = (token or "").strip()
    if not token:
        raise ValidationError("device token is required.")
    if platform not in DELIVERY_PLATFORMS:
        raise ValidationError(f"platform must be one of: {', '.join(DELIVERY_PLATFORMS)}.")
    row = _get_or_create(db, user_id)
    row.delivery_token = token
    row.delivery_platform = platform
    db.commit()
    db.refresh(row)
    logger.info("Registered push token for %s platform=%s", user_id, platform)
    return row


def set_verified(db: Session, user_id: str, verified: bool) -> UserLocation:
    row = get_profile(db, user_id)
    if row is None:
        raise NotFoundError("Profile not found.")
    row.verified = bool(verified)
    db.commit()
    db.refresh(row)
    logger.info("Profile %s verified=%s", user_id, row.verified)
    return row


def serialize_profile(row: UserLocation) -> dict:
    point = row.point
    return {
        "user_id": row.user_id,
        "display_name": row.display_name,
        "phone": row.phone,
        "verified": row.verified,
        "proof_url": resolve_photo_url(row.proof_ref),
        "has_location": row.has_location,
        "lat": row.latitude,
        "lon": row.longitude,
        "location": {"type": "Point", "coordinates": [point.lon, point.lat]} if point else None,
        "push_registered": bool(row.delivery_token),
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
