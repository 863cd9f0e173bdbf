"""Storage gateway hook: validate a signed photo link before serving the private object."""
from fastapi import APIRouter, Query

from theftwatch.services.storage import verify_signed_token

router = APIRouter()


@router.get("/storage/verify")
def verify(token: str = Query(..., min_length=1)) -> dict[str, str]:
    bucket, path = verify_signed_token(token)
    return {"bucket": bucket, "path": path}
