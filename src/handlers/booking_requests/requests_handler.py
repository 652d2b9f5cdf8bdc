import logging
import os
from boto3 import resource
from pydantic import ValidationError

from booking_core.models.booking_requests import BookingRequest
from booking_core.repository.booking_request_repo import BookingRequestRepository
from booking_core.repository.package_repo import PackageRepository
from booking_core.repository.user_repo import UserRepository
from booking_core.repository.vendor_repo import VendorRepository
from booking_core.schemas.bookings import CreateBookingRequest, RespondToRequest
from booking_core.services.booking_request_service import BookingRequestService
from booking_core.services.notification_service import NotificationService
from booking_core.utils.custom_exceptions import BookingError
from booking_core.utils.custom_response import send_custom_response, send_error_response
from booking_core.utils.datetime_normaliser import format_calendar_date, to_iso

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
SENDER_EMAIL = os.environ.get("SENDER_EMAIL")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

request_repo = BookingRequestRepository(table)
user_repo = UserRepository(table)
vendor_repo = VendorRepository(table)
package_repo = PackageRepository(table)
notification_service = NotificationService(SENDER_EMAIL, AWS_REGION) if SENDER_EMAIL else None

request_service = BookingRequestService(
    request_repo=request_repo,
    user_repo=user_repo,
    vendor_repo=vendor_repo,
    package_repo=package_repo,
    notifier=notification_service,
)


def _authorizer(event) -> dict:
    return event["requestContext"]["authorizer"]


def _path_param(event, name):
    return (event.get("pathParameters") or {}).get(name)


def _validation_message(err: ValidationError) -> str:
    return "; ".join(f"{e['msg']}" for e in err.errors())


def serialize_request(request: BookingRequest) -> dict:
    result = {
        "booking_id": request.request_id,
        "user_id": request.user_id,
        "vendor_id": request.vendor_id,
        "name": request.name,
        "email": request.email,
        "phone": request.phone,
        "venue": request.venue,
        "service_type": request.service_type.value,
        "package_id": request.package_id,
        "customizations": request.customizations,
        "message": request.message,
        "starting_date": format_calendar_date(request.starting_date),
        "number_of_days": request.number_of_days,
        "total_price": str(request.total_price),
        "status": request.status.value,
        "requested_dates": request.requested_dates,
        "rejection_reason": request.rejection_reason,
        "created_at": to_iso(request.created_at),
    }
    if request.advance_payment is not None:
        result["advance_payment"] = {
            "amount": str(request.advance_payment.amount),
            "status": request.advance_payment.status.value,
        }
        result["advance_payment_due_date"] = to_iso(request.advance_payment_due_date)
    return result


def create_request(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = CreateBookingRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, _validation_message(e))
    except ValueError as e:
        return send_custom_response(400, str(e))

    try:
        user_id = _authorizer(event)["user_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        request = request_service.create_request(request_body, user_id)
        return send_custom_response(
            201, "Booking request created successfully", serialize_request(request)
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error creating booking request")
        return send_custom_response(500, "Internal server error")


def respond_to_request(event, context):
    request_id = _path_param(event, "booking_id")
    if not request_id:
        return send_custom_response(400, "booking_id is required")
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = RespondToRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, _validation_message(e))

    try:
        vendor_id = _authorizer(event)["vendor_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        request = request_service.accept_or_reject(
            request_id, vendor_id, request_body.action, request_body.rejection_reason
        )
        return send_custom_response(
            200, f"Booking request {request.status.value.lower()}", serialize_request(request)
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception(f"Unhandled error responding to booking request {request_id}")
        return send_custom_response(500, "Internal server error")


def revoke_request(event, context):
    request_id = _path_param(event, "booking_id")
    if not request_id:
        return send_custom_response(400, "booking_id is required")

    try:
        user_id = _authorizer(event)["user_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        request = request_service.revoke(request_id, user_id)
        return send_custom_response(200, "Booking request revoked", serialize_request(request))

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception(f"Unhandled error revoking booking request {request_id}")
        return send_custom_response(500, "Internal server error")


def get_user_requests(event, context):
    try:
        user_id = _authorizer(event)["user_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        requests = request_service.get_user_requests(user_id)
        result = [serialize_request(r) for r in requests]
        return send_custom_response(
            200,
            "Booking requests retrieved successfully",
            {"count": len(result), "requests": result},
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error listing user booking requests")
        return send_custom_response(500, "Internal server error")


def get_vendor_requests(event, context):
    try:
        vendor_id = _authorizer(event)["vendor_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        requests = request_service.get_vendor_requests(vendor_id)
        result = [serialize_request(r) for r in requests]
        return send_custom_response(
            200,
            "Booking requests retrieved successfully",
            {"count": len(result), "requests": result},
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error listing vendor booking requests")
        return send_custom_response(500, "Internal server error")
