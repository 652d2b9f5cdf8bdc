import logging
import os
from boto3 import resource
from pydantic import ValidationError

from booking_core.models.bookings import ConfirmedBooking
from booking_core.repository.booking_repo import BookingRepository
from booking_core.repository.booking_request_repo import BookingRequestRepository
from booking_core.repository.user_repo import UserRepository
from booking_core.repository.vendor_repo import VendorRepository
from booking_core.schemas.bookings import CancelBookingRequest, PaymentConfirmation
from booking_core.services.booking_service import BookingService
from booking_core.services.notification_service import NotificationService
from booking_core.services.payment_service import PaymentService
from booking_core.services.schedule_service import SchedulerService
from booking_core.utils.custom_exceptions import BookingError
from booking_core.utils.custom_response import send_custom_response, send_error_response
from booking_core.utils.datetime_normaliser import format_calendar_date, to_iso

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
PAYMENT_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "10"))
CHECKOUT_SUCCESS_URL = os.environ.get("CHECKOUT_SUCCESS_URL")
CHECKOUT_CANCEL_URL = os.environ.get("CHECKOUT_CANCEL_URL")
SENDER_EMAIL = os.environ.get("SENDER_EMAIL")
REMINDER_LAMBDA_ARN = os.environ.get("REMINDER_LAMBDA_ARN")
SCHEDULER_ROLE_ARN = os.environ.get("SCHEDULER_ROLE_ARN")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)
request_repo = BookingRequestRepository(table)
user_repo = UserRepository(table)
vendor_repo = VendorRepository(table)

payment_service = (
    PaymentService(
        STRIPE_SECRET_KEY,
        CHECKOUT_SUCCESS_URL,
        CHECKOUT_CANCEL_URL,
        timeout_seconds=PAYMENT_TIMEOUT_SECONDS,
    )
    if STRIPE_SECRET_KEY
    else None
)
notification_service = NotificationService(SENDER_EMAIL, AWS_REGION) if SENDER_EMAIL else None
scheduler_service = (
    SchedulerService(REMINDER_LAMBDA_ARN, SCHEDULER_ROLE_ARN, AWS_REGION)
    if REMINDER_LAMBDA_ARN
    else None
)

booking_service = BookingService(
    booking_repo=booking_repo,
    request_repo=request_repo,
    user_repo=user_repo,
    vendor_repo=vendor_repo,
    payment_service=payment_service,
    notifier=notification_service,
    schedule_service=scheduler_service,
)


def _authorizer(event) -> dict:
    return event["requestContext"]["authorizer"]


def _path_param(event, name):
    return (event.get("pathParameters") or {}).get(name)


def _validation_message(err: ValidationError) -> str:
    return "; ".join(f"{e['msg']}" for e in err.errors())


def serialize_booking(booking: ConfirmedBooking) -> dict:
    advance = booking.advance_payment
    final = booking.final_payment
    return {
        "booking_id": booking.booking_id,
        "user_id": booking.user_id,
        "vendor_id": booking.vendor_id,
        "name": booking.name,
        "email": booking.email,
        "phone": booking.phone,
        "venue": booking.venue,
        "service_type": booking.service_type.value,
        "starting_date": format_calendar_date(booking.starting_date),
        "number_of_days": booking.number_of_days,
        "requested_dates": booking.requested_dates,
        "total_amount": str(booking.total_amount),
        "status": booking.status.value,
        "advance_payment": {
            "amount": str(advance.amount),
            "status": advance.status.value,
            "paid_at": to_iso(advance.paid_at),
            "refunded_at": to_iso(advance.refunded_at) if advance.refunded_at else None,
        },
        "final_payment": {
            "amount": str(final.amount),
            "status": final.status.value,
            "due_date": to_iso(final.due_date),
            "paid_at": to_iso(final.paid_at) if final.paid_at else None,
        },
        "cancellation_reason": booking.cancellation_reason,
        "created_at": to_iso(booking.created_at),
    }


def start_advance_payment(event, context):
    request_id = _path_param(event, "booking_id")
    if not request_id:
        return send_custom_response(400, "booking_id is required")

    try:
        user_id = _authorizer(event)["user_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        session = booking_service.start_advance_payment(request_id, user_id)
        return send_custom_response(
            200,
            "Checkout session created",
            {"session_id": session.session_id, "url": session.url},
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception(f"Unhandled error starting advance payment for {request_id}")
        return send_custom_response(500, "Internal server error")


def start_final_payment(event, context):
    booking_id = _path_param(event, "booking_id")
    if not booking_id:
        return send_custom_response(400, "booking_id is required")

    try:
        user_id = _authorizer(event)["user_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        session = booking_service.start_final_payment(booking_id, user_id)
        return send_custom_response(
            200,
            "Checkout session created",
            {"session_id": session.session_id, "url": session.url},
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception(f"Unhandled error starting final payment for {booking_id}")
        return send_custom_response(500, "Internal server error")


def _confirm_payment(event, confirm, message):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = PaymentConfirmation.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, _validation_message(e))

    try:
        booking = confirm(
            request_body.booking_id, request_body.amount_paid, request_body.payment_id
        )
        return send_custom_response(200, message, serialize_booking(booking))

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception(f"Unhandled error confirming payment for {request_body.booking_id}")
        return send_custom_response(500, "Internal server error")


def confirm_advance_payment(event, context):
    return _confirm_payment(
        event, booking_service.confirm_advance_payment, "Booking confirmed successfully"
    )


def confirm_final_payment(event, context):
    return _confirm_payment(
        event, booking_service.confirm_final_payment, "Final payment recorded successfully"
    )


def cancel_booking(event, context):
    booking_id = _path_param(event, "booking_id")
    if not booking_id:
        return send_custom_response(400, "booking_id is required")

    reason = None
    if event.get("body"):
        try:
            reason = CancelBookingRequest.model_validate_json(event["body"]).reason
        except ValidationError as e:
            return send_custom_response(400, _validation_message(e))

    try:
        user_id = _authorizer(event)["user_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        result = booking_service.cancel(booking_id, reason, user_id=user_id)
        return send_custom_response(
            200,
            "Booking cancelled successfully",
            {
                "booking": serialize_booking(result.booking),
                "refund_id": result.refund_id,
                "refund_amount": str(result.user_refund_amount),
                "refund_percentage": result.decision.user_refund_percentage,
                "vendor_fee": str(result.vendor_fee_amount),
            },
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception(f"Unhandled error cancelling booking {booking_id}")
        return send_custom_response(500, "Internal server error")


def get_user_bookings(event, context):
    try:
        user_id = _authorizer(event)["user_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        result = [serialize_booking(b) for b in booking_service.get_user_bookings(user_id)]
        return send_custom_response(
            200,
            "Bookings retrieved successfully",
            {"count": len(result), "bookings": result},
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error listing user bookings")
        return send_custom_response(500, "Internal server error")


def get_vendor_bookings(event, context):
    try:
        vendor_id = _authorizer(event)["vendor_id"]
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    try:
        result = [serialize_booking(b) for b in booking_service.get_vendor_bookings(vendor_id)]
        return send_custom_response(
            200,
            "Bookings retrieved successfully",
            {"count": len(result), "bookings": result},
        )

    except BookingError as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error listing vendor bookings")
        return send_custom_response(500, "Internal server error")
