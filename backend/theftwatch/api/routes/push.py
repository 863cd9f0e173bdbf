"""Push notification registration: device tokens for theft alerts."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from theftwatch.api.deps import current_user_id
from theftwatch.db.session import get_db
from theftwatch.services.profile_service import register_delivery_token

router = APIRouter()
logger = logging.getLogger(__name__)


class RegisterPushBody(BaseModel):
    device_token: str = Field(..., min_length=1, max_length=256, description="APNs/FCM device token")
    platform: str = Field(default="ios", pattern="^(ios|android)$")


@router.post("/push/register")
def register_push_token(
    body: RegisterPushBody,
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
):
    """
    Register the caller's device for push alerts.
    Call this from the app after receiving the device token. Idempotent per user.
    """
    register_delivery_token(db, caller_id, body.device_token, body.platform)
    return {"ok": True, "message": "Token registered"}
