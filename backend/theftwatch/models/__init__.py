from theftwatch.models.confirmation import Confirmation
from theftwatch.models.notification_alert import NotificationAlert
from theftwatch.models.report import Report
from theftwatch.models.user_location import UserLocation

__all__ = [
    "Confirmation",
    "NotificationAlert",
    "Report",
    "UserLocation",
]
