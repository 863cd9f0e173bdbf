"""
Reports API: submit (+ fan-out), active listing, own reports, status/location updates, confirmations.

The create body has no geometry field: the point is always derived from lat/lon server-side.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from theftwatch.api.deps import current_user_id, optional_user_id
from theftwatch.core.constants import ACTIVE_REPORTS_LIMIT, ReportCategory
from theftwatch.db.session import get_db
from theftwatch.services import confirmation_service, report_service
from theftwatch.services.fanout import submit_and_notify
from theftwatch.services.report_service import ReportSubmission

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateReportRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    category: str = Field(ReportCategory.VEHICLE.value, description="vehicle | stolen_vehicle")
    vehicle_no: str = Field(..., max_length=64, description="Number plate or other identifying text")
    description: str | None = Field(None, max_length=4000)
    photo_ref: str | None = Field(None, max_length=512, description="'<bucket>/<path>' or URL of the evidence photo")
    lat: float
    lon: float
    radius_m: int | None = Field(None, description="Alert radius in meters (category default when omitted)")
    expiry_hours: int | None = Field(None, description="Visibility window (category default when omitted)")
    alert_message: str | None = Field(None, max_length=500, description="Custom message sent to nearby users")
    vehicle_type: str | None = Field(None, max_length=32)
    vehicle_color: str | None = Field(None, max_length=32)
    idempotency_key: str | None = Field(None, max_length=128, description="Client-generated per submission attempt")


class StatusUpdateRequest(BaseModel):
    status: str


class LocationUpdateRequest(BaseModel):
    lat: float
    lon: float


class ConfirmationRequest(BaseModel):
    type: str = Field(..., description="seen | false | call_police")


@router.post("/reports", status_code=201)
def create_report(
    body: CreateReportRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    """
    Store a theft report and alert every user within its radius.
    alerts_sent may be 0 (nobody in range, or the fan-out failed after the report was stored).
    """
    result, alerts_sent = submit_and_notify(db, caller_id, ReportSubmission(**body.model_dump()))
    return {
        "report": report_service.serialize_report(result.report),
        "alerts_sent": alerts_sent,
        "duplicate": result.duplicate,
    }


@router.get("/reports/active")
def list_active_reports(
    db: Session = Depends(get_db),
    category: str | None = Query(None),
    limit: int = Query(100, ge=1, le=ACTIVE_REPORTS_LIMIT),
) -> dict[str, Any]:
    rows = report_service.list_active_reports(db, category=category, limit=limit)
    return {"reports": [report_service.serialize_report(r) for r in rows], "count": len(rows)}


@router.get("/reports/mine")
def list_my_reports(
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    """Own reports including expired ones, each with its confirmations and per-type counts."""
    items = []
    for report, confirmations in report_service.list_user_reports(db, caller_id):
        item = report_service.serialize_report(report)
        item["confirmations"] = [confirmation_service.serialize_confirmation(c) for c in confirmations]
        item["confirmation_counts"] = confirmation_service.summarize(confirmations)
        items.append(item)
    return {"reports": items, "count": len(items)}


@router.get("/reports/{report_id}")
def get_report(
    report_id: int,
    db: Session = Depends(get_db),
    caller_id: str | None = Depends(optional_user_id),
) -> dict[str, Any]:
    return report_service.serialize_report(report_service.get_report(db, report_id, caller_id))


@router.patch("/reports/{report_id}/status")
def update_status(
    report_id: int,
    body: StatusUpdateRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    report = report_service.update_report_status(db, caller_id, report_id, body.status)
    return report_service.serialize_report(report)


@router.patch("/reports/{report_id}/location")
def update_location(
    report_id: int,
    body: LocationUpdateRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    report = report_service.update_report_location(db, caller_id, report_id, body.lat, body.lon)
    return report_service.serialize_report(report)


@router.post("/reports/{report_id}/confirmations", status_code=201)
def confirm_report(
    report_id: int,
    body: ConfirmationRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    row = confirmation_service.record_confirmation(db, caller_id, report_id, body.type)
    return confirmation_service.serialize_confirmation(row)


@router.get("/reports/{report_id}/confirmations")
def list_confirmations(report_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    rows = confirmation_service.list_confirmations(db, report_id)
    return {
        "confirmations": [confirmation_service.serialize_confirmation(c) for c in rows],
        "counts": confirmation_service.summarize(rows),
    }
