"""
Object storage references for report photos and ID proofs.

Only the reference string is stored on rows ("<bucket>/<path>" or a full URL). Public
buckets resolve to a stable public URL; private buckets get a time-limited signed link
(HS256 JWT carrying bucket/path). If signing is unavailable the raw reference is returned,
so a missing secret degrades the photo link rather than failing the whole response.
"""
import logging
import time
from urllib.parse import quote

import jwt

from theftwatch.config import settings
from theftwatch.core.constants import (
    PRIVATE_BUCKETS,
    PUBLIC_BUCKETS,
    SIGNED_URL_MAX_TTL_SECONDS,
    SIGNED_URL_MIN_TTL_SECONDS,
)
from theftwatch.core.errors import AuthorizationError

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_AUDIENCE = "storage"


def split_ref(ref: str) -> tuple[str, str]:
    """'evidence/u1/photo.jpg' -> ('evidence', 'u1/photo.jpg')."""
    bucket, _, path = ref.strip().lstrip("/").partition("/")
    if not bucket or not path:
        raise ValueError(f"Storage reference must be '<bucket>/<path>', got {ref!r}")
    return bucket, path


def public_url(bucket: str, path: str) -> str:
    base = settings.storage_public_base_url.rstrip("/")
    return f"{base}/public/{bucket}/{quote(path)}"


def create_signed_url(bucket: str, path: str, ttl_seconds: int | None = None) -> str:
    secret = settings.storage_signing_secret
    if not secret:
        raise RuntimeError("STORAGE_SIGNING_SECRET is not configured")
    ttl = ttl_seconds or settings.signed_url_ttl_seconds
    ttl = max(SIGNED_URL_MIN_TTL_SECONDS, min(SIGNED_URL_MAX_TTL_SECONDS, int(ttl)))
    now = int(time.time())
    token = jwt.encode(
        {"bucket": bucket, "path": path, "aud": _AUDIENCE, "iat": now, "exp": now + ttl},
        secret,
        algorithm=_ALGORITHM,
    )
    base = settings.storage_public_base_url.rstrip("/")
    return f"{base}/sign/{bucket}/{quote(path)}?token={token}"


def verify_signed_token(token: str) -> tuple[str, str]:
    """Return (bucket, path) for a valid, unexpired token."""
    secret = settings.storage_signing_secret
    if not secret:
        raise AuthorizationError("Signed URLs are not enabled.")
    try:
        claims = jwt.decode(token, secret, algorithms=[_ALGORITHM], audience=_AUDIENCE)
    except jwt.ExpiredSignatureError as e:
        raise AuthorizationError("Signed URL has expired.") from e
    except jwt.InvalidTokenError as e:
        raise AuthorizationError("Signed URL is invalid.") from e
    return claims["bucket"], claims["path"]


def resolve_photo_url(ref: str | None, ttl_seconds: int | None = None) -> str | None:
    if not ref:
        return None
    if ref.startswith(("http://", "https://")):
        return ref
    try:
        bucket, path = split_ref(ref)
        if bucket in PUBLIC_BUCKETS:
            return public_url(bucket, path)
        if bucket not in PRIVATE_BUCKETS:
            logger.debug("Unknown bucket %s for %s; treating as private", bucket, ref)
        return create_signed_url(bucket, path, ttl_seconds)
    except (ValueError, RuntimeError, jwt.PyJWTError) as e:
        logger.warning("Could not resolve photo URL for %s, using raw reference: %s", ref, e)
        return ref
