"""
Centralized constants: vocabularies, per-category report policy and scheduler ids.

Change policy numbers here (or via settings) instead of scattering literals across services and routes.
"""
from dataclasses import dataclass
from enum import Enum

from theftwatch.config import settings


class ReportCategory(str, Enum):
    VEHICLE = "vehicle"
    STOLEN_VEHICLE = "stolen_vehicle"


class ReportStatus(str, Enum):
    """One status vocabulary for every report category. Orthogonal to time-based expiry."""

    ACTIVE = "active"
    VERIFIED = "verified"
    FOUND = "found"
    RESOLVED = "resolved"
    FALSE_REPORT = "false"


DEFAULT_REPORT_STATUS = ReportStatus.ACTIVE

# Literals written by older clients, read as their canonical value
LEGACY_STATUS_ALIASES = {
    "pending": ReportStatus.ACTIVE,
}


class ConfirmationType(str, Enum):
    SEEN = "seen"
    FALSE = "false"
    CALL_POLICE = "call_police"


class AlertStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    PENDING = "pending"


class AlertType(str, Enum):
    THEFT_ALERT = "theft_alert"
    STOLEN_VEHICLE_ALERT = "stolen_vehicle_alert"


@dataclass(frozen=True)
class CategoryPolicy:
    default_expiry_hours: int
    max_expiry_hours: int
    default_radius_m: int
    alert_type: AlertType
    message_template: str


CATEGORY_POLICIES: dict[ReportCategory, CategoryPolicy] = {
    ReportCategory.VEHICLE: CategoryPolicy(
        default_expiry_hours=settings.theft_alert_expiry_hours,
        max_expiry_hours=settings.theft_alert_max_expiry_hours,
        default_radius_m=1000,
        alert_type=AlertType.THEFT_ALERT,
        message_template="THEFT ALERT: {vehicle_no} stolen near your location. Check the live map for details.",
    ),
    ReportCategory.STOLEN_VEHICLE: CategoryPolicy(
        default_expiry_hours=settings.stolen_vehicle_expiry_hours,
        max_expiry_hours=settings.stolen_vehicle_max_expiry_hours,
        default_radius_m=5000,
        alert_type=AlertType.STOLEN_VEHICLE_ALERT,
        message_template="STOLEN VEHICLE: {vehicle_no} was reported stolen within {radius_km} km of you. Keep an eye out.",
    ),
}

MIN_EXPIRY_HOURS = 1

# Listing caps so responses stay bounded
ACTIVE_REPORTS_LIMIT = 500
USER_REPORTS_LIMIT = 200
ALERTS_LIST_DEFAULT_LIMIT = 80
ALERTS_LIST_MAX_LIMIT = 200

# Signed URL lifetime bounds (seconds)
SIGNED_URL_MIN_TTL_SECONDS = 60
SIGNED_URL_MAX_TTL_SECONDS = 365 * 24 * 60 * 60

# Storage buckets: public ones get stable URLs, private ones need signed links
PUBLIC_BUCKETS = frozenset({"report-photos"})
PRIVATE_BUCKETS = frozenset({"evidence", "id-proofs"})

# Scheduler job ids (must match ids used in main.py add_job)
PUSH_JOB_ID = "push_pending_alerts"
PUSH_INTERVAL_SECONDS = 60
PUSH_BATCH_LIMIT = 200

# Realtime-published tables
REALTIME_TABLES = ("reports", "notification_alerts")

# Owner-internal columns never published on the change stream
REALTIME_HIDDEN_COLUMNS = {
    "reports": frozenset({"idempotency_key", "alerts_dispatched_at"}),
}
