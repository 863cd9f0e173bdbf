"""
Request dependencies shared by the routers.

Caller identity arrives as the X-User-Id header, asserted by the auth gateway in front of
this service. Routes that act on behalf of a user require it.
"""
from fastapi import Header, HTTPException, status

from theftwatch.config import settings


def current_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header is required")
    return user_id


def optional_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str | None:
    return (x_user_id or "").strip() or None


def require_admin(x_admin_secret: str | None = Header(None, alias="X-Admin-Secret")) -> None:
    if not settings.admin_secret or x_admin_secret != settings.admin_secret:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid admin secret")
