import logging
import os
from boto3 import resource

from booking_core.repository.booking_repo import BookingRepository
from booking_core.repository.booking_request_repo import BookingRequestRepository
from booking_core.repository.user_repo import UserRepository
from booking_core.repository.vendor_repo import VendorRepository
from booking_core.services.booking_service import BookingService
from booking_core.services.notification_service import NotificationService
from booking_core.services.schedule_service import ReminderKind

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
SENDER_EMAIL = os.environ.get("SENDER_EMAIL")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = BookingService(
    booking_repo=BookingRepository(table),
    request_repo=BookingRequestRepository(table),
    user_repo=UserRepository(table),
    vendor_repo=VendorRepository(table),
    notifier=NotificationService(SENDER_EMAIL, AWS_REGION) if SENDER_EMAIL else None,
)


def send_reminder(event, context):
    booking_id = event.get("booking_id")
    kind = event.get("kind")

    if not booking_id or not kind:
        raise KeyError("Missing booking_id or kind in event")

    try:
        reminder_kind = ReminderKind(kind)
    except ValueError:
        logger.error(f"Unknown reminder kind {kind!r} for booking {booking_id}")
        return {"sent": False}

    sent = booking_service.send_reminder(booking_id, reminder_kind)
    return {"sent": sent}
