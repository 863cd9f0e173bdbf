"""Admin API: profile verification (ID proof reviewed out of band). Requires X-Admin-Secret."""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from theftwatch.api.deps import require_admin
from theftwatch.db.session import get_db
from theftwatch.services import profile_service

router = APIRouter(dependencies=[Depends(require_admin)])


class VerifiedBody(BaseModel):
    verified: bool


@router.patch("/admin/users/{user_id}/verified")
def set_verified(user_id: str, body: VerifiedBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    row = profile_service.set_verified(db, user_id, body.verified)
    return profile_service.serialize_profile(row)
