"""
Users API: the range query endpoint and the caller's profile (details, location sharing).
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from theftwatch.api.deps import current_user_id
from theftwatch.config import settings
from theftwatch.core.errors import NotFoundError
from theftwatch.db.session import get_db
from theftwatch.services import profile_service
from theftwatch.services.range_query import find_users_in_range

router = APIRouter()
logger = logging.getLogger(__name__)


class ProfileRequest(BaseModel):
    display_name: str | None = Field(None, max_length=128)
    phone: str | None = Field(None, max_length=32)
    proof_ref: str | None = Field(None, max_length=512, description="'id-proofs/<user>/<file>' object path")


class LocationRequest(BaseModel):
    lat: float
    lon: float


@router.get("/users/in-range")
def users_in_range(
    lat: float = Query(...),
    lon: float = Query(...),
    radius_m: int = Query(..., ge=0),
    verified_only: bool | None = Query(None),
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    """Located users within radius_m of (lat, lon), nearest first. The caller is never included."""
    users = find_users_in_range(
        db,
        lat,
        lon,
        radius_m,
        exclude_user_id=caller_id,
        verified_only=settings.fanout_verified_only if verified_only is None else verified_only,
    )
    return {"users": [u.to_dict() for u in users], "count": len(users)}


@router.get("/profile")
def get_profile(db: Session = Depends(get_db), caller_id: str = Depends(current_user_id)) -> dict[str, Any]:
    row = profile_service.get_profile(db, caller_id)
    if row is None:
        raise NotFoundError("Profile not found.")
    return profile_service.serialize_profile(row)


@router.put("/profile")
def put_profile(
    body: ProfileRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    row = profile_service.upsert_profile(
        db,
        caller_id,
        display_name=body.display_name,
        phone=body.phone,
        proof_ref=body.proof_ref,
    )
    return profile_service.serialize_profile(row)


@router.patch("/profile/location")
def patch_location(
    body: LocationRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    row = profile_service.update_location(db, caller_id, body.lat, body.lon)
    return profile_service.serialize_profile(row)


@router.delete("/profile/location")
def delete_location(db: Session = Depends(get_db), caller_id: str = Depends(current_user_id)) -> dict[str, Any]:
    row = profile_service.clear_location(db, caller_id)
    return profile_service.serialize_profile(row)
