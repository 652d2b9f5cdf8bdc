import unittest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError
from fakes import (
    FakeBookingRepository,
    FakeBookingRequestRepository,
    FakePackageRepository,
    FakeUserRepository,
    FakeVendorRepository,
    FixedClock,
)

from booking_core.models.booking_requests import ServiceType
from booking_core.models.bookings import BookingStatus, PaymentStatus
from booking_core.models.packages import CustomizationOption, Package
from booking_core.models.transactions import PaymentType, TransactionType
from booking_core.models.users import User
from booking_core.models.vendors import Vendor
from booking_core.schemas.bookings import CreateBookingRequest
from booking_core.services.booking_request_service import BookingRequestService
from booking_core.services.booking_service import BookingService
from booking_core.services.payment_service import CheckoutSession
from booking_core.services.schedule_service import ReminderKind
from booking_core.utils.custom_exceptions import (
    ConflictError,
    DateConflictError,
    InternalError,
    NotFoundException,
    PolicyDenied,
    RefundAlreadyProcessed,
    ValidationFailed,
)
from booking_core.utils.email_templates import NotificationTemplate


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class BookingServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.clock = FixedClock(utc(2031, 3, 1, 9, 0))
        self.user_repo = FakeUserRepository(
            [User("u1", "alice@example.com", "Alice"), User("u2", "bob@example.com", "Bob")]
        )
        self.vendor_repo = FakeVendorRepository([Vendor("v1", "Studio One", "studio@example.com")])
        self.package_repo = FakePackageRepository(
            [
                Package(
                    "p1",
                    "v1",
                    ServiceType.WEDDING.value,
                    Decimal("4000"),
                    [
                        CustomizationOption("drone", "Drone coverage", Decimal("1500")),
                        CustomizationOption("album", "Printed album", Decimal("500")),
                    ],
                )
            ]
        )
        self.request_repo = FakeBookingRequestRepository()
        self.booking_repo = FakeBookingRepository(
            self.request_repo, self.user_repo, self.vendor_repo
        )
        self.notifier = MagicMock()
        self.payments = MagicMock()
        self.payments.refund_checkout_payment.return_value = "re_123"
        self.scheduler = MagicMock()

        self.request_service = BookingRequestService(
            request_repo=self.request_repo,
            user_repo=self.user_repo,
            vendor_repo=self.vendor_repo,
            package_repo=self.package_repo,
            notifier=self.notifier,
            clock=self.clock,
        )
        self.service = BookingService(
            booking_repo=self.booking_repo,
            request_repo=self.request_repo,
            user_repo=self.user_repo,
            vendor_repo=self.vendor_repo,
            payment_service=self.payments,
            notifier=self.notifier,
            schedule_service=self.scheduler,
            clock=self.clock,
        )

    def accepted_request(self, user_id="u1", starting_date="01/04/2031", service_type="Wedding"):
        body = CreateBookingRequest.model_validate(
            {
                "vendor_id": "v1",
                "name": "Alice",
                "email": "alice@example.com",
                "phone": "9876543210",
                "venue": "Lake Palace",
                "service_type": service_type,
                "package_id": "p1",
                "customizations": ["drone", "album"],
                "starting_date": starting_date,
                "number_of_days": 2,
                "total_price": "10000",
            }
        )
        request = self.request_service.create_request(body, user_id)
        return self.request_service.accept_or_reject(request.request_id, "v1", "accept")

    def confirmed_booking(self):
        request = self.accepted_request()
        self.clock.now = utc(2031, 3, 2, 9, 0)
        return self.service.confirm_advance_payment(request.request_id, Decimal("3000"), "cs_1")

    def sent_templates(self):
        return [c.args[1] for c in self.notifier.send.call_args_list]


class TestLifecycle(BookingServiceTestCase):
    def test_happy_path_from_request_to_completion(self):
        request = self.accepted_request()
        self.assertEqual(request.advance_payment.amount, Decimal("3000"))

        self.clock.now = utc(2031, 3, 2, 9, 0)
        booking = self.service.confirm_advance_payment(request.request_id, Decimal("3000"), "cs_1")

        self.assertEqual(booking.booking_id, request.request_id)
        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        self.assertEqual(booking.advance_payment.status, PaymentStatus.COMPLETED)
        self.assertEqual(booking.advance_payment.paid_at, utc(2031, 3, 2, 9, 0))
        self.assertEqual(booking.final_payment.amount, Decimal("7000"))
        self.assertEqual(booking.final_payment.status, PaymentStatus.PENDING)
        self.assertEqual(booking.final_payment.due_date, utc(2031, 4, 10))
        self.assertNotIn(request.request_id, self.request_repo.requests)
        self.assertEqual(
            self.vendor_repo.vendors["v1"].booked_dates, {"01/04/2031", "02/04/2031"}
        )

        self.clock.now = utc(2031, 4, 5, 12, 0)
        completed = self.service.confirm_final_payment(booking.booking_id, Decimal("7000"), "cs_2")

        self.assertEqual(completed.status, BookingStatus.COMPLETED)
        self.assertEqual(completed.final_payment.status, PaymentStatus.COMPLETED)
        self.assertEqual(completed.final_payment.payment_id, "cs_2")
        self.assertEqual(
            self.booking_repo.bookings[booking.booking_id].status, BookingStatus.COMPLETED
        )
        self.assertIn(NotificationTemplate.BOOKING_COMPLETED_VENDOR, self.sent_templates())

    def test_confirmation_schedules_reminders(self):
        booking = self.confirmed_booking()

        self.scheduler.schedule_reminder.assert_any_call(
            booking.booking_id, ReminderKind.EVENT, utc(2031, 3, 31)
        )
        self.scheduler.schedule_reminder.assert_any_call(
            booking.booking_id, ReminderKind.FINAL_PAYMENT, utc(2031, 4, 3)
        )

    def test_scheduling_failure_does_not_fail_confirmation(self):
        self.scheduler.schedule_reminder.side_effect = ClientError(
            {"Error": {"Code": "ValidationException", "Message": "bad"}}, "CreateSchedule"
        )

        booking = self.confirmed_booking()

        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        self.assertIn(booking.booking_id, self.booking_repo.bookings)

    def test_confirmation_notifies_both_parties(self):
        self.confirmed_booking()

        templates = self.sent_templates()
        self.assertIn(NotificationTemplate.BOOKING_CONFIRMED_USER, templates)
        self.assertIn(NotificationTemplate.BOOKING_CONFIRMED_VENDOR, templates)


class TestConfirmAdvancePayment(BookingServiceTestCase):
    def test_wrong_amount(self):
        request = self.accepted_request()

        with self.assertRaises(ValidationFailed):
            self.service.confirm_advance_payment(request.request_id, Decimal("2999"), "cs_1")
        self.assertIn(request.request_id, self.request_repo.requests)

    def test_unknown_request(self):
        with self.assertRaises(NotFoundException):
            self.service.confirm_advance_payment("IDMISSING", Decimal("3000"), "cs_1")

    def test_second_confirmation_fails(self):
        booking = self.confirmed_booking()

        with self.assertRaises(NotFoundException):
            self.service.confirm_advance_payment(booking.booking_id, Decimal("3000"), "cs_1")

    def test_overdue_request_cannot_be_confirmed(self):
        request = self.accepted_request()
        self.clock.now = utc(2031, 3, 5)
        self.request_service.expire_overdue()

        with self.assertRaises(ConflictError):
            self.service.confirm_advance_payment(request.request_id, Decimal("3000"), "cs_1")

    def test_dates_taken_since_acceptance(self):
        request = self.accepted_request()
        self.vendor_repo.vendors["v1"].booked_dates.add("02/04/2031")

        with self.assertRaises(DateConflictError) as ctx:
            self.service.confirm_advance_payment(request.request_id, Decimal("3000"), "cs_1")

        self.assertEqual(ctx.exception.conflicting_dates, ["02/04/2031"])
        self.assertIn(request.request_id, self.request_repo.requests)
        self.assertEqual(self.booking_repo.bookings, {})

    def test_overlapping_requests_only_one_confirms(self):
        first = self.accepted_request(user_id="u1", starting_date="01/04/2031")
        second = self.accepted_request(user_id="u2", starting_date="02/04/2031")

        self.service.confirm_advance_payment(first.request_id, Decimal("3000"), "cs_1")
        with self.assertRaises(DateConflictError):
            self.service.confirm_advance_payment(second.request_id, Decimal("3000"), "cs_2")

        self.assertEqual(list(self.booking_repo.bookings), [first.request_id])

    def test_storage_failure_surfaces_as_internal_error(self):
        request = self.accepted_request()
        with patch.object(
            self.booking_repo,
            "confirm",
            side_effect=ClientError(
                {"Error": {"Code": "InternalServerError", "Message": "boom"}},
                "TransactWriteItems",
            ),
        ):
            with self.assertRaises(InternalError):
                self.service.confirm_advance_payment(request.request_id, Decimal("3000"), "cs_1")


class TestFinalPayment(BookingServiceTestCase):
    def test_wrong_amount(self):
        booking = self.confirmed_booking()

        with self.assertRaises(ValidationFailed):
            self.service.confirm_final_payment(booking.booking_id, Decimal("6999"), "cs_2")

    def test_late_payment_denied(self):
        booking = self.confirmed_booking()
        self.clock.now = utc(2031, 4, 10, 0, 1)

        with self.assertRaises(PolicyDenied):
            self.service.confirm_final_payment(booking.booking_id, Decimal("7000"), "cs_2")

    def test_already_completed(self):
        booking = self.confirmed_booking()
        self.service.confirm_final_payment(booking.booking_id, Decimal("7000"), "cs_2")

        with self.assertRaises(ConflictError):
            self.service.confirm_final_payment(booking.booking_id, Decimal("7000"), "cs_3")

    def test_unknown_booking(self):
        with self.assertRaises(NotFoundException):
            self.service.confirm_final_payment("IDMISSING", Decimal("7000"), "cs_2")


class TestCancel(BookingServiceTestCase):
    def test_early_cancellation_refunds_and_releases_dates(self):
        booking = self.confirmed_booking()
        self.clock.now = utc(2031, 3, 3, 9, 0)

        result = self.service.cancel(booking.booking_id, "Change of plans", user_id="u1")

        self.payments.refund_checkout_payment.assert_called_once_with(
            "cs_1",
            Decimal("2850.00"),
            idempotency_key=f"refund-{booking.booking_id}-cs_1",
        )
        self.assertEqual(result.refund_id, "re_123")
        self.assertEqual(result.user_refund_amount, Decimal("2850.00"))
        self.assertEqual(result.vendor_fee_amount, Decimal("150.00"))

        stored = self.booking_repo.bookings[booking.booking_id]
        self.assertEqual(stored.status, BookingStatus.CANCELLED)
        self.assertEqual(stored.cancellation_reason, "Change of plans")
        self.assertEqual(stored.advance_payment.status, PaymentStatus.REFUNDED)
        self.assertEqual(stored.advance_payment.refunded_at, utc(2031, 3, 3, 9, 0))

        self.assertEqual(self.vendor_repo.vendors["v1"].booked_dates, set())
        self.assertEqual(self.user_repo.users["u1"].wallet_balance, Decimal("2850.00"))
        self.assertEqual(self.vendor_repo.vendors["v1"].wallet_balance, Decimal("150.00"))

        user_txn = self.user_repo.transactions["u1"][0]
        self.assertEqual(user_txn.transaction_type, TransactionType.CREDIT)
        self.assertEqual(user_txn.payment_type, PaymentType.REFUND)
        self.assertEqual(user_txn.payment_id, "re_123")
        vendor_txn = self.vendor_repo.transactions["v1"][0]
        self.assertEqual(vendor_txn.payment_type, PaymentType.CANCELLATION)

        self.scheduler.cancel_reminder.assert_any_call(booking.booking_id, ReminderKind.EVENT)
        self.scheduler.cancel_reminder.assert_any_call(
            booking.booking_id, ReminderKind.FINAL_PAYMENT
        )

    def test_reminder_cleanup_failure_does_not_fail_cancellation(self):
        booking = self.confirmed_booking()
        self.clock.now = utc(2031, 3, 3, 9, 0)
        self.scheduler.cancel_reminder.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "denied"}},
            "DeleteSchedule",
        )

        result = self.service.cancel(booking.booking_id)

        self.assertEqual(result.booking.status, BookingStatus.CANCELLED)

    def test_partial_refund_period(self):
        booking = self.confirmed_booking()
        # 29 day window, 14 days remaining -> 51.7% elapsed
        self.clock.now = utc(2031, 3, 17, 9, 0)

        result = self.service.cancel(booking.booking_id)

        self.assertEqual(result.user_refund_amount, Decimal("2100.00"))
        self.assertEqual(result.vendor_fee_amount, Decimal("900.00"))
        self.assertEqual(result.booking.cancellation_reason, "Partial refund period")

    def test_too_close_to_event(self):
        booking = self.confirmed_booking()
        self.clock.now = utc(2031, 3, 30, 9, 0)

        with self.assertRaises(PolicyDenied) as ctx:
            self.service.cancel(booking.booking_id)

        self.assertIn("too close to event", ctx.exception.message)
        self.payments.refund_checkout_payment.assert_not_called()
        self.assertEqual(
            self.booking_repo.bookings[booking.booking_id].status, BookingStatus.CONFIRMED
        )

    def test_already_refunded_at_gateway(self):
        booking = self.confirmed_booking()
        self.clock.now = utc(2031, 3, 3, 9, 0)
        self.payments.refund_checkout_payment.side_effect = RefundAlreadyProcessed(
            "This payment has already been refunded", error_code="charge_already_refunded"
        )

        with self.assertRaises(RefundAlreadyProcessed) as ctx:
            self.service.cancel(booking.booking_id)

        self.assertEqual(ctx.exception.code, "ALREADY_REFUNDED")
        self.assertEqual(
            self.booking_repo.bookings[booking.booking_id].status, BookingStatus.CONFIRMED
        )
        self.assertEqual(self.user_repo.users["u1"].wallet_balance, Decimal("0"))
        self.assertEqual(
            self.vendor_repo.vendors["v1"].booked_dates, {"01/04/2031", "02/04/2031"}
        )

    def test_completed_booking_cannot_be_cancelled(self):
        booking = self.confirmed_booking()
        self.service.confirm_final_payment(booking.booking_id, Decimal("7000"), "cs_2")

        with self.assertRaises(ConflictError):
            self.service.cancel(booking.booking_id)

    def test_other_user_cannot_cancel(self):
        booking = self.confirmed_booking()

        with self.assertRaises(NotFoundException):
            self.service.cancel(booking.booking_id, user_id="u2")

    def test_local_failure_after_refund_is_internal_error(self):
        booking = self.confirmed_booking()
        self.clock.now = utc(2031, 3, 3, 9, 0)

        with patch.object(
            self.booking_repo,
            "apply_cancellation_effects",
            side_effect=ClientError(
                {"Error": {"Code": "InternalServerError", "Message": "boom"}},
                "TransactWriteItems",
            ),
        ):
            with self.assertRaises(InternalError):
                self.service.cancel(booking.booking_id)
        self.payments.refund_checkout_payment.assert_called_once()

    def test_conflict_after_refund_is_flagged_for_reconciliation(self):
        booking = self.confirmed_booking()
        self.clock.now = utc(2031, 3, 3, 9, 0)
        self.booking_repo.apply_cancellation_effects = MagicMock(
            side_effect=ConflictError(f"Booking {booking.booking_id} was modified concurrently")
        )

        with self.assertLogs("booking_core.services.booking_service", level="CRITICAL") as logs:
            with self.assertRaises(InternalError):
                self.service.cancel(booking.booking_id)

        self.assertIn("re_123", logs.output[0])
        self.payments.refund_checkout_payment.assert_called_once()
        self.assertEqual(
            self.booking_repo.bookings[booking.booking_id].status, BookingStatus.CONFIRMED
        )

    def test_without_payment_gateway(self):
        booking = self.confirmed_booking()
        self.service.payment_service = None
        self.clock.now = utc(2031, 3, 3, 9, 0)

        with self.assertRaises(InternalError):
            self.service.cancel(booking.booking_id)


class TestCheckoutAndReminders(BookingServiceTestCase):
    def test_start_advance_payment(self):
        request = self.accepted_request()
        self.payments.create_checkout_session.return_value = CheckoutSession("cs_1", "https://pay")

        session = self.service.start_advance_payment(request.request_id, "u1")

        self.assertEqual(session.session_id, "cs_1")
        kwargs = self.payments.create_checkout_session.call_args.kwargs
        self.assertEqual(kwargs["amount"], Decimal("3000"))
        self.assertEqual(kwargs["metadata"]["bookingId"], request.request_id)
        self.assertEqual(kwargs["metadata"]["paymentType"], "advance")

    def test_start_advance_payment_after_due_date(self):
        request = self.accepted_request()
        self.clock.now = utc(2031, 3, 4, 0, 1)

        with self.assertRaises(PolicyDenied):
            self.service.start_advance_payment(request.request_id, "u1")

    def test_start_advance_payment_for_someone_else(self):
        request = self.accepted_request()

        with self.assertRaises(NotFoundException):
            self.service.start_advance_payment(request.request_id, "u2")

    def test_start_final_payment(self):
        booking = self.confirmed_booking()
        self.payments.create_checkout_session.return_value = CheckoutSession("cs_2", "https://pay")

        self.service.start_final_payment(booking.booking_id, "u1")

        kwargs = self.payments.create_checkout_session.call_args.kwargs
        self.assertEqual(kwargs["amount"], Decimal("7000"))
        self.assertEqual(kwargs["metadata"]["paymentType"], "final")

    def test_event_reminder(self):
        booking = self.confirmed_booking()
        self.notifier.reset_mock()

        self.assertTrue(self.service.send_reminder(booking.booking_id, ReminderKind.EVENT))
        self.assertEqual(self.sent_templates(), [NotificationTemplate.EVENT_REMINDER])

    def test_final_payment_reminder_skipped_once_paid(self):
        booking = self.confirmed_booking()
        self.service.confirm_final_payment(booking.booking_id, Decimal("7000"), "cs_2")
        self.notifier.reset_mock()

        self.assertFalse(
            self.service.send_reminder(booking.booking_id, ReminderKind.FINAL_PAYMENT)
        )
        self.notifier.send.assert_not_called()

    def test_reminder_for_unknown_booking(self):
        self.assertFalse(self.service.send_reminder("IDMISSING", ReminderKind.EVENT))

    def test_listing(self):
        booking = self.confirmed_booking()

        self.assertEqual(
            [b.booking_id for b in self.service.get_user_bookings("u1")], [booking.booking_id]
        )
        self.assertEqual(
            [b.booking_id for b in self.service.get_vendor_bookings("v1")], [booking.booking_id]
        )
        self.assertEqual(self.service.get_user_bookings("u2"), [])


if __name__ == "__main__":
    unittest.main()
