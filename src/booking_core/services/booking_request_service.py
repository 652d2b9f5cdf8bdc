import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from booking_core.models.booking_requests import (
    AdvancePayment,
    AdvancePaymentStatus,
    BookingRequest,
    RequestStatus,
)
from booking_core.models.packages import Package
from booking_core.repository.booking_request_repo import BookingRequestRepository
from booking_core.repository.package_repo import PackageRepository
from booking_core.repository.user_repo import UserRepository
from booking_core.repository.vendor_repo import VendorRepository
from booking_core.schemas.bookings import CreateBookingRequest
from booking_core.services.date_resolver import expand_calendar_dates, find_conflicts
from booking_core.services.notification_service import NotificationService
from booking_core.services.payment_schedule import compute_due_dates, split_payment
from booking_core.utils.constants import MIN_ACCEPT_LEAD_DAYS, REQUEST_ID_PREFIX
from booking_core.utils.custom_exceptions import (
    ConflictError,
    DateConflictError,
    NotFoundException,
    ValidationFailed,
)
from booking_core.utils.datetime_normaliser import format_calendar_date, utc_now
from booking_core.utils.email_templates import NotificationTemplate
from booking_core.utils.id_generator import generate_unique_id

logger = logging.getLogger(__name__)

ACCEPT = "accept"
REJECT = "reject"


class BookingRequestService:
    def __init__(
        self,
        request_repo: BookingRequestRepository,
        user_repo: UserRepository,
        vendor_repo: VendorRepository,
        package_repo: PackageRepository,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.request_repo = request_repo
        self.user_repo = user_repo
        self.vendor_repo = vendor_repo
        self.package_repo = package_repo
        self.notifier = notifier
        self.clock = clock

    def create_request(self, req: CreateBookingRequest, user_id: str) -> BookingRequest:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundException("user", user_id, 404)

        vendor = self.vendor_repo.get_by_id(req.vendor_id)
        if vendor is None:
            raise NotFoundException("vendor", req.vendor_id, 404)

        if req.number_of_days < 1:
            raise ValidationFailed("number_of_days must be at least 1")

        # only the starting date is checked here; the full range is checked on accept
        starting_date = format_calendar_date(req.starting_date)
        if starting_date in vendor.booked_dates:
            raise DateConflictError([starting_date])

        package = self.package_repo.get_by_id(req.package_id)
        if package is None or package.vendor_id != vendor.vendor_id:
            raise NotFoundException("package", req.package_id, 404)

        total_price = self.calculate_total_price(package, req.number_of_days, req.customizations)
        if Decimal(req.total_price) != total_price:
            raise ValidationFailed("Price mismatch in calculations")

        now = self.clock()
        request = BookingRequest(
            request_id=generate_unique_id(REQUEST_ID_PREFIX),
            user_id=user_id,
            vendor_id=vendor.vendor_id,
            name=req.name,
            email=str(req.email),
            phone=req.phone,
            venue=req.venue,
            service_type=req.service_type,
            package_id=package.package_id,
            starting_date=req.starting_date,
            number_of_days=req.number_of_days,
            total_price=total_price,
            message=req.message,
            customizations=list(req.customizations),
            created_at=now,
            updated_at=now,
        )
        self.request_repo.create(request)
        logger.info(f"Booking request {request.request_id} created for vendor {vendor.vendor_id}")

        payload = self._payload(request)
        self._notify(vendor.email, NotificationTemplate.NEW_BOOKING_REQUEST, payload)
        self._notify(request.email, NotificationTemplate.BOOKING_REQUEST_SUBMITTED, payload)
        return request

    @staticmethod
    def calculate_total_price(package: Package, number_of_days: int, customizations: List[str]) -> Decimal:
        total = Decimal(package.price) * number_of_days
        for option_id in customizations:
            option = package.find_option(option_id)
            if option is None:
                raise ValidationFailed(f"Unknown customization option '{option_id}'")
            total += Decimal(option.price)
        return total

    def accept_or_reject(
        self,
        request_id: str,
        vendor_id: str,
        action: str,
        rejection_reason: Optional[str] = None,
    ) -> BookingRequest:
        request = self.request_repo.get_by_id(request_id)
        if request is None or request.vendor_id != vendor_id:
            raise NotFoundException("booking request", request_id, 404)

        if request.status != RequestStatus.REQUESTED:
            raise ConflictError("Booking has already been processed")

        if action == REJECT:
            return self._reject(request, rejection_reason)
        if action == ACCEPT:
            return self._accept(request)
        raise ValidationFailed(f"Invalid action '{action}'. Allowed: {ACCEPT}, {REJECT}")

    def _reject(self, request: BookingRequest, rejection_reason: Optional[str]) -> BookingRequest:
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationFailed("rejection_reason is required when rejecting")

        request.status = RequestStatus.REJECTED
        request.rejection_reason = rejection_reason.strip()
        request.updated_at = self.clock()
        self.request_repo.update(request, RequestStatus.REQUESTED)
        logger.info(f"Booking request {request.request_id} rejected")

        self._notify(request.email, NotificationTemplate.BOOKING_REJECTED, self._payload(request))
        return request

    def _accept(self, request: BookingRequest) -> BookingRequest:
        vendor = self.vendor_repo.get_by_id(request.vendor_id)
        if vendor is None:
            raise NotFoundException("vendor", request.vendor_id, 404)

        requested_dates = expand_calendar_dates(request.starting_date, request.number_of_days)
        conflicts = find_conflicts(requested_dates, vendor.booked_dates)
        if conflicts.has_conflict:
            raise DateConflictError(conflicts.conflicting)

        now = self.clock()
        lead_days = (request.starting_date - now.date()).days
        if lead_days < MIN_ACCEPT_LEAD_DAYS:
            raise ValidationFailed(
                f"Booking must be at least {MIN_ACCEPT_LEAD_DAYS} days in advance"
            )

        split = split_payment(request.total_price)
        due = compute_due_dates(request.starting_date, request.number_of_days, now)

        request.status = RequestStatus.ACCEPTED
        request.requested_dates = requested_dates
        request.advance_payment = AdvancePayment(amount=split.advance_amount)
        request.advance_payment_due_date = due.advance_payment_due
        request.updated_at = now
        self.request_repo.update(request, RequestStatus.REQUESTED)
        logger.info(
            f"Booking request {request.request_id} accepted, advance {split.advance_amount} "
            f"due {due.advance_payment_due.isoformat()}"
        )

        payload = self._payload(request)
        payload.update(
            advance_amount=split.advance_amount,
            final_amount=split.final_amount,
            advance_payment_due_date=format_calendar_date(due.advance_payment_due.date()),
            final_payment_due_date=format_calendar_date(due.final_payment_due.date()),
        )
        self._notify(request.email, NotificationTemplate.BOOKING_ACCEPTED, payload)
        return request

    def revoke(self, request_id: str, user_id: str) -> BookingRequest:
        request = self.request_repo.get_by_id(request_id)
        if request is None or request.user_id != user_id:
            raise NotFoundException("booking request", request_id, 404)

        if request.status != RequestStatus.REQUESTED:
            raise ConflictError(
                f"Cannot revoke booking request. Current status: {request.status.value}"
            )

        request.status = RequestStatus.REVOKED
        request.updated_at = self.clock()
        self.request_repo.update(request, RequestStatus.REQUESTED)
        logger.info(f"Booking request {request.request_id} revoked by user {user_id}")
        return request

    def expire_overdue(self) -> List[str]:
        """Moves accepted requests whose advance is past due to PAYMENT_OVERDUE.

        Safe to run concurrently: the status update is conditional, so a
        request another run already expired is skipped without notifying.
        """
        now = self.clock()
        expired = []
        failed = 0
        for request in self.request_repo.find_overdue(now):
            request.status = RequestStatus.PAYMENT_OVERDUE
            request.advance_payment.status = AdvancePaymentStatus.OVERDUE
            request.updated_at = now
            try:
                self.request_repo.update(request, RequestStatus.ACCEPTED)
            except ConflictError:
                logger.info(f"Booking request {request.request_id} already handled, skipping")
                continue
            except (ClientError, BotoCoreError):
                logger.exception(f"Failed to expire booking request {request.request_id}")
                failed += 1
                continue

            expired.append(request.request_id)
            logger.info(f"Booking request {request.request_id} marked payment overdue")
            try:
                self._notify_overdue(request)
            except (ClientError, BotoCoreError):
                logger.exception(f"Failed to notify overdue booking request {request.request_id}")

        if failed:
            logger.error(f"Overdue sweep could not expire {failed} request(s); they stay pending")
        logger.info(f"Overdue sweep finished, {len(expired)} request(s) expired")
        return expired

    def _notify_overdue(self, request: BookingRequest):
        payload = self._payload(request)
        payload.update(
            advance_amount=request.advance_payment.amount,
            due_date=format_calendar_date(request.advance_payment_due_date.date()),
        )
        self._notify(request.email, NotificationTemplate.PAYMENT_OVERDUE_USER, payload)

        vendor = self.vendor_repo.get_by_id(request.vendor_id)
        if vendor is None:
            logger.warning(f"Vendor {request.vendor_id} not found, overdue notice not sent")
            return
        self._notify(vendor.email, NotificationTemplate.PAYMENT_OVERDUE_VENDOR, payload)

    def get_user_requests(self, user_id: str) -> List[BookingRequest]:
        return [
            r for r in self.request_repo.find_by_user(user_id)
            if r.status != RequestStatus.REVOKED
        ]

    def get_vendor_requests(self, vendor_id: str) -> List[BookingRequest]:
        return [
            r for r in self.request_repo.find_by_vendor(vendor_id)
            if r.status != RequestStatus.REVOKED
        ]

    @staticmethod
    def _payload(request: BookingRequest) -> dict:
        return {
            "booking_id": request.request_id,
            "customer_name": request.name,
            "service_type": request.service_type.value,
            "venue": request.venue,
            "starting_date": format_calendar_date(request.starting_date),
            "number_of_days": request.number_of_days,
            "total_price": request.total_price,
            "message": request.message or "-",
            "requested_dates": ", ".join(request.requested_dates),
            "rejection_reason": request.rejection_reason,
        }

    def _notify(self, recipient: str, template: NotificationTemplate, payload: dict):
        if self.notifier is None:
            return
        self.notifier.send(recipient, template, payload)
