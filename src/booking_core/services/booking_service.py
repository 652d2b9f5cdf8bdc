import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from booking_core.models.booking_requests import BookingRequest
from booking_core.models.bookings import (
    BookingAdvancePayment,
    BookingStatus,
    ConfirmedBooking,
    FinalPayment,
    PaymentStatus,
)
from booking_core.models.transactions import (
    PaymentMethod,
    PaymentType,
    Transaction,
    TransactionType,
)
from booking_core.repository.booking_repo import BookingRepository
from booking_core.repository.booking_request_repo import BookingRequestRepository
from booking_core.repository.user_repo import UserRepository
from booking_core.repository.vendor_repo import VendorRepository
from booking_core.services.date_resolver import expand_calendar_dates, find_conflicts
from booking_core.services.notification_service import NotificationService
from booking_core.services.payment_schedule import compute_due_dates, split_payment
from booking_core.services.payment_service import CheckoutSession, PaymentService
from booking_core.services.refund_policy import RefundDecision, calculate_refund_eligibility
from booking_core.services.schedule_service import ReminderKind, SchedulerService
from booking_core.utils.constants import EVENT_REMINDER_LEAD_DAYS
from booking_core.utils.custom_exceptions import (
    ConflictError,
    DateConflictError,
    InternalError,
    NotFoundException,
    PolicyDenied,
    ValidationFailed,
)
from booking_core.utils.datetime_normaliser import format_calendar_date, utc_midnight, utc_now
from booking_core.utils.email_templates import NotificationTemplate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CancellationResult:
    booking: ConfirmedBooking
    refund_id: str
    user_refund_amount: Decimal
    vendor_fee_amount: Decimal
    decision: RefundDecision


class BookingService:
    def __init__(
        self,
        booking_repo: BookingRepository,
        request_repo: BookingRequestRepository,
        user_repo: UserRepository,
        vendor_repo: VendorRepository,
        payment_service: Optional[PaymentService] = None,
        notifier: Optional[NotificationService] = None,
        schedule_service: Optional[SchedulerService] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.booking_repo = booking_repo
        self.request_repo = request_repo
        self.user_repo = user_repo
        self.vendor_repo = vendor_repo
        self.payment_service = payment_service
        self.notifier = notifier
        self.schedule_service = schedule_service
        self.clock = clock

    # advance payment

    def start_advance_payment(self, request_id: str, user_id: str) -> CheckoutSession:
        request = self.request_repo.get_by_id(request_id)
        if request is None or request.user_id != user_id:
            raise NotFoundException("booking request", request_id, 404)
        if not request.is_awaiting_advance:
            raise ConflictError("Booking request is not awaiting an advance payment")

        now = self.clock()
        if request.advance_payment_due_date < now:
            raise PolicyDenied("Advance payment is overdue")

        return self._payment_gateway().create_checkout_session(
            amount=request.advance_payment.amount,
            product_name=f"Advance payment for {request.service_type.value}",
            description=f"Booking {request.request_id} starting {format_calendar_date(request.starting_date)}",
            metadata={
                "bookingId": request.request_id,
                "vendorId": request.vendor_id,
                "paymentType": "advance",
            },
            now=now,
        )

    def confirm_advance_payment(
        self, booking_id: str, amount_paid: Decimal, payment_id: str
    ) -> ConfirmedBooking:
        request = self.request_repo.get_by_id(booking_id)
        if request is None:
            raise NotFoundException("booking request", booking_id, 404)
        if not request.is_awaiting_advance:
            raise ConflictError("Booking request is not awaiting an advance payment")
        if Decimal(amount_paid) != request.advance_payment.amount:
            raise ValidationFailed("Incorrect advance payment amount")

        vendor = self.vendor_repo.get_by_id(request.vendor_id)
        if vendor is None:
            raise NotFoundException("vendor", request.vendor_id, 404)

        requested_dates = expand_calendar_dates(request.starting_date, request.number_of_days)
        conflicts = find_conflicts(requested_dates, vendor.booked_dates)
        if conflicts.has_conflict:
            raise DateConflictError(conflicts.conflicting)

        now = self.clock()
        booking = self._build_booking(request, requested_dates, payment_id, now)

        try:
            self.booking_repo.confirm(booking, request)
        except ClientError as err:
            logger.exception(f"Failed to confirm booking {booking_id}")
            raise InternalError(f"Failed to confirm booking {booking_id}") from err
        logger.info(f"Booking {booking_id} confirmed, dates {', '.join(requested_dates)} booked")

        payload = self._payload(booking)
        self._notify(booking.email, NotificationTemplate.BOOKING_CONFIRMED_USER, payload)
        self._notify(vendor.email, NotificationTemplate.BOOKING_CONFIRMED_VENDOR, payload)
        self._schedule_reminders(booking, now)
        return booking

    def _build_booking(
        self, request: BookingRequest, requested_dates: List[str], payment_id: str, now: datetime
    ) -> ConfirmedBooking:
        split = split_payment(request.total_price)
        due = compute_due_dates(request.starting_date, request.number_of_days, now)
        return ConfirmedBooking(
            booking_id=request.request_id,
            user_id=request.user_id,
            vendor_id=request.vendor_id,
            name=request.name,
            email=request.email,
            phone=request.phone,
            venue=request.venue,
            service_type=request.service_type,
            package_id=request.package_id,
            starting_date=request.starting_date,
            number_of_days=request.number_of_days,
            total_amount=request.total_price,
            advance_payment=BookingAdvancePayment(
                amount=request.advance_payment.amount,
                payment_id=payment_id,
                paid_at=now,
            ),
            final_payment=FinalPayment(
                amount=split.final_amount,
                due_date=due.final_payment_due,
            ),
            requested_dates=requested_dates,
            customizations=list(request.customizations),
            created_at=now,
        )

    def _schedule_reminders(self, booking: ConfirmedBooking, now: datetime):
        if self.schedule_service is None:
            return

        event_date = utc_midnight(booking.starting_date)
        reminders = [
            (ReminderKind.EVENT, event_date - timedelta(days=EVENT_REMINDER_LEAD_DAYS)),
            (ReminderKind.FINAL_PAYMENT, event_date + timedelta(days=booking.number_of_days)),
        ]
        for kind, run_at in reminders:
            if run_at <= now:
                logger.info(f"Skipping {kind.value} reminder for {booking.booking_id}, time has passed")
                continue
            try:
                self.schedule_service.schedule_reminder(booking.booking_id, kind, run_at)
            except (ClientError, BotoCoreError, ValueError):
                logger.exception(f"Failed to schedule {kind.value} reminder for {booking.booking_id}")

    def _cancel_reminders(self, booking: ConfirmedBooking):
        if self.schedule_service is None:
            return

        for kind in ReminderKind:
            try:
                self.schedule_service.cancel_reminder(booking.booking_id, kind)
            except (ClientError, BotoCoreError):
                logger.exception(f"Failed to delete {kind.value} reminder for {booking.booking_id}")

    # final payment

    def start_final_payment(self, booking_id: str, user_id: str) -> CheckoutSession:
        booking = self._get_booking(booking_id, user_id)
        self._check_final_payment_open(booking)

        return self._payment_gateway().create_checkout_session(
            amount=booking.final_payment.amount,
            product_name=f"Final payment for {booking.service_type.value}",
            description=f"Booking {booking.booking_id} starting {format_calendar_date(booking.starting_date)}",
            metadata={
                "bookingId": booking.booking_id,
                "vendorId": booking.vendor_id,
                "paymentType": "final",
            },
            now=self.clock(),
        )

    def confirm_final_payment(
        self, booking_id: str, amount_paid: Decimal, payment_id: str
    ) -> ConfirmedBooking:
        booking = self._get_booking(booking_id)
        now = self._check_final_payment_open(booking)
        if Decimal(amount_paid) != booking.final_payment.amount:
            raise ValidationFailed("Incorrect final payment amount")

        booking.final_payment.status = PaymentStatus.COMPLETED
        booking.final_payment.paid_at = now
        booking.final_payment.payment_id = payment_id
        booking.status = BookingStatus.COMPLETED
        self.booking_repo.update(booking, BookingStatus.CONFIRMED)
        logger.info(f"Final payment received, booking {booking_id} completed")

        payload = self._payload(booking)
        self._notify(booking.email, NotificationTemplate.BOOKING_COMPLETED_USER, payload)
        self._notify_vendor(booking, NotificationTemplate.BOOKING_COMPLETED_VENDOR, payload)
        return booking

    def _check_final_payment_open(self, booking: ConfirmedBooking) -> datetime:
        if booking.status != BookingStatus.CONFIRMED:
            raise ConflictError(f"Booking is {booking.status.value.lower()}")
        if booking.final_payment.status != PaymentStatus.PENDING:
            raise ConflictError("Final payment is already completed or not required")
        if booking.advance_payment.status != PaymentStatus.COMPLETED:
            raise ConflictError("Advance payment has not been completed")

        now = self.clock()
        if now > booking.final_payment.due_date:
            raise PolicyDenied("Final payment is overdue")
        return now

    # cancellation

    def cancel(
        self, booking_id: str, reason: Optional[str] = None, user_id: Optional[str] = None
    ) -> CancellationResult:
        """Cancels a confirmed booking and refunds the advance per the refund policy.

        The gateway refund runs first since it cannot be safely repeated;
        the local effects then land in a single transaction.
        """
        booking = self._get_booking(booking_id, user_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise ConflictError(
                f"Booking cannot be cancelled. Current status: {booking.status.value}"
            )

        now = self.clock()
        decision = calculate_refund_eligibility(
            booking.advance_payment.paid_at, booking.starting_date, now
        )
        if not decision.is_eligible:
            raise PolicyDenied(decision.reason)

        advance = booking.advance_payment.amount
        user_refund = (advance * decision.user_refund_percentage / 100).quantize(
            CENT, rounding=ROUND_HALF_UP
        )
        vendor_fee = (advance * decision.vendor_fee_percentage / 100).quantize(
            CENT, rounding=ROUND_HALF_UP
        )

        refund_id = self._payment_gateway().refund_checkout_payment(
            booking.advance_payment.payment_id,
            user_refund,
            idempotency_key=f"refund-{booking.booking_id}-{booking.advance_payment.payment_id}",
        )

        booking.status = BookingStatus.CANCELLED
        booking.cancellation_reason = reason or decision.reason
        booking.cancelled_at = now
        booking.advance_payment.status = PaymentStatus.REFUNDED
        booking.advance_payment.refunded_at = now

        user_txn = Transaction(
            amount=user_refund,
            transaction_type=TransactionType.CREDIT,
            payment_type=PaymentType.REFUND,
            payment_method=PaymentMethod.STRIPE,
            payment_id=refund_id,
            booking_id=booking.booking_id,
            created_at=now,
        )
        vendor_txn = Transaction(
            amount=vendor_fee,
            transaction_type=TransactionType.CREDIT,
            payment_type=PaymentType.CANCELLATION,
            payment_method=PaymentMethod.STRIPE,
            payment_id=booking.advance_payment.payment_id,
            booking_id=booking.booking_id,
            created_at=now,
        )

        try:
            self.booking_repo.apply_cancellation_effects(booking, user_txn, vendor_txn)
        except (ClientError, ConflictError) as err:
            logger.critical(
                f"Refund {refund_id} issued for booking {booking_id} but local cancellation "
                f"failed; manual reconciliation needed: {err}"
            )
            raise InternalError(
                f"Refund issued but booking {booking_id} could not be updated"
            ) from err
        logger.info(
            f"Booking {booking_id} cancelled, refunded {user_refund}, vendor fee {vendor_fee}"
        )

        payload = self._payload(booking)
        payload.update(
            refund_amount=user_refund,
            refund_percentage=decision.user_refund_percentage,
            vendor_fee=vendor_fee,
            cancellation_reason=booking.cancellation_reason,
        )
        self._notify(booking.email, NotificationTemplate.BOOKING_CANCELLED_USER, payload)
        self._notify_vendor(booking, NotificationTemplate.BOOKING_CANCELLED_VENDOR, payload)
        self._cancel_reminders(booking)

        return CancellationResult(
            booking=booking,
            refund_id=refund_id,
            user_refund_amount=user_refund,
            vendor_fee_amount=vendor_fee,
            decision=decision,
        )

    # reminders

    def send_reminder(self, booking_id: str, kind: ReminderKind) -> bool:
        booking = self.booking_repo.get_by_id(booking_id)
        if booking is None:
            logger.warning(f"Reminder for unknown booking {booking_id}, skipping")
            return False
        if booking.is_terminal:
            logger.info(f"Booking {booking_id} is {booking.status.value}, reminder skipped")
            return False

        payload = self._payload(booking)
        if kind == ReminderKind.FINAL_PAYMENT:
            if booking.final_payment.status != PaymentStatus.PENDING:
                return False
            self._notify(booking.email, NotificationTemplate.FINAL_PAYMENT_REMINDER, payload)
        else:
            self._notify(booking.email, NotificationTemplate.EVENT_REMINDER, payload)
        return True

    # queries

    def get_user_bookings(self, user_id: str) -> List[ConfirmedBooking]:
        return self.booking_repo.find_by_user(user_id)

    def get_vendor_bookings(self, vendor_id: str) -> List[ConfirmedBooking]:
        return self.booking_repo.find_by_vendor(vendor_id)

    def _get_booking(self, booking_id: str, user_id: Optional[str] = None) -> ConfirmedBooking:
        booking = self.booking_repo.get_by_id(booking_id)
        if booking is None or (user_id is not None and booking.user_id != user_id):
            raise NotFoundException("booking", booking_id, 404)
        return booking

    def _payment_gateway(self) -> PaymentService:
        if self.payment_service is None:
            logger.error("STRIPE_SECRET_KEY is not set, payment gateway unavailable")
            raise InternalError("Payment gateway is not configured")
        return self.payment_service

    @staticmethod
    def _payload(booking: ConfirmedBooking) -> dict:
        return {
            "booking_id": booking.booking_id,
            "customer_name": booking.name,
            "service_type": booking.service_type.value,
            "venue": booking.venue,
            "starting_date": format_calendar_date(booking.starting_date),
            "requested_dates": ", ".join(booking.requested_dates),
            "advance_amount": booking.advance_payment.amount,
            "final_amount": booking.final_payment.amount,
            "final_payment_due_date": format_calendar_date(booking.final_payment.due_date.date()),
        }

    def _notify_vendor(self, booking: ConfirmedBooking, template: NotificationTemplate, payload: dict):
        if self.notifier is None:
            return
        vendor = self.vendor_repo.get_by_id(booking.vendor_id)
        if vendor is None:
            logger.warning(f"Vendor {booking.vendor_id} not found, {template.value} not sent")
            return
        self.notifier.send(vendor.email, template, payload)

    def _notify(self, recipient: str, template: NotificationTemplate, payload: dict):
        if self.notifier is None:
            return
        self.notifier.send(recipient, template, payload)
