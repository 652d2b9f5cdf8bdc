import logging
import os
from boto3 import resource

from booking_core.repository.booking_request_repo import BookingRequestRepository
from booking_core.repository.package_repo import PackageRepository
from booking_core.repository.user_repo import UserRepository
from booking_core.repository.vendor_repo import VendorRepository
from booking_core.services.booking_request_service import BookingRequestService
from booking_core.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
SENDER_EMAIL = os.environ.get("SENDER_EMAIL")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

request_service = BookingRequestService(
    request_repo=BookingRequestRepository(table),
    user_repo=UserRepository(table),
    vendor_repo=VendorRepository(table),
    package_repo=PackageRepository(table),
    notifier=NotificationService(SENDER_EMAIL, AWS_REGION) if SENDER_EMAIL else None,
)


def expire_overdue(event, context):
    """Daily sweep (cron 30 10 * * *) releasing requests whose advance was never paid."""
    expired = request_service.expire_overdue()
    return {"expired": len(expired), "booking_ids": expired}
