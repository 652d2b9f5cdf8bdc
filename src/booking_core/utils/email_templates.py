from enum import Enum
from typing import Tuple


class NotificationTemplate(str, Enum):
    NEW_BOOKING_REQUEST = "NEW_BOOKING_REQUEST"
    BOOKING_REQUEST_SUBMITTED = "BOOKING_REQUEST_SUBMITTED"
    BOOKING_ACCEPTED = "BOOKING_ACCEPTED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    PAYMENT_OVERDUE_USER = "PAYMENT_OVERDUE_USER"
    PAYMENT_OVERDUE_VENDOR = "PAYMENT_OVERDUE_VENDOR"
    BOOKING_CONFIRMED_USER = "BOOKING_CONFIRMED_USER"
    BOOKING_CONFIRMED_VENDOR = "BOOKING_CONFIRMED_VENDOR"
    EVENT_REMINDER = "EVENT_REMINDER"
    FINAL_PAYMENT_REMINDER = "FINAL_PAYMENT_REMINDER"
    BOOKING_COMPLETED_USER = "BOOKING_COMPLETED_USER"
    BOOKING_COMPLETED_VENDOR = "BOOKING_COMPLETED_VENDOR"
    BOOKING_CANCELLED_USER = "BOOKING_CANCELLED_USER"
    BOOKING_CANCELLED_VENDOR = "BOOKING_CANCELLED_VENDOR"


TEMPLATES = {
    NotificationTemplate.NEW_BOOKING_REQUEST: (
        "New Booking Request - {booking_id}",
        """
            Hello,

            You have a new booking request from {customer_name}.

            Booking ID: {booking_id}
            Service: {service_type}
            Venue: {venue}
            Starting Date: {starting_date}
            Days: {number_of_days}
            Total Price: ₹{total_price}

            Message from the client:
            {message}

            Please accept or reject the request from your dashboard.
            """,
    ),
    NotificationTemplate.BOOKING_REQUEST_SUBMITTED: (
        "Booking Request Sent - {booking_id}",
        """
            Hello {customer_name},

            Your booking request {booking_id} for {service_type} on {starting_date}
            has been sent to the vendor. We will let you know once they respond.
            """,
    ),
    NotificationTemplate.BOOKING_ACCEPTED: (
        "Booking Accepted - {booking_id}",
        """
            Hello {customer_name},

            Your booking request has been accepted.

            Booking ID: {booking_id}
            Service: {service_type}
            Venue: {venue}
            Dates: {requested_dates}

            Total Price: ₹{total_price}
            Advance Payment: ₹{advance_amount} (due by {advance_payment_due_date})
            Final Payment: ₹{final_amount} (due by {final_payment_due_date})

            The request is released if the advance payment is not received in time.
            """,
    ),
    NotificationTemplate.BOOKING_REJECTED: (
        "Booking Request Update - {booking_id}",
        """
            Hello {customer_name},

            Unfortunately your booking request {booking_id} for {service_type}
            on {starting_date} was declined.

            Reason: {rejection_reason}
            """,
    ),
    NotificationTemplate.PAYMENT_OVERDUE_USER: (
        "Booking Cancelled - Payment Overdue - {booking_id}",
        """
            Hello {customer_name},

            The advance payment of ₹{advance_amount} for booking {booking_id}
            was due on {due_date} and has not been received.
            The booking request has been cancelled.
            """,
    ),
    NotificationTemplate.PAYMENT_OVERDUE_VENDOR: (
        "Booking Cancelled - Client Payment Overdue - {booking_id}",
        """
            Hello,

            Booking {booking_id} for {customer_name} on {starting_date} at {venue}
            was cancelled because the advance payment was not received.
            """,
    ),
    NotificationTemplate.BOOKING_CONFIRMED_USER: (
        "Booking Confirmed - {booking_id}",
        """
            Hello {customer_name},

            We received your advance payment of ₹{advance_amount}.
            Booking {booking_id} is confirmed for {requested_dates}.

            Final Payment: ₹{final_amount} (due by {final_payment_due_date})
            """,
    ),
    NotificationTemplate.BOOKING_CONFIRMED_VENDOR: (
        "Booking Confirmed - {booking_id}",
        """
            Hello,

            {customer_name} paid the advance for booking {booking_id}.
            The following dates are now booked: {requested_dates}
            """,
    ),
    NotificationTemplate.EVENT_REMINDER: (
        "Upcoming Event Reminder - {booking_id}",
        """
            Hello {customer_name},

            This is a reminder that your {service_type} booking {booking_id}
            starts on {starting_date} at {venue}.
            """,
    ),
    NotificationTemplate.FINAL_PAYMENT_REMINDER: (
        "Final Payment Reminder - {booking_id}",
        """
            Hello {customer_name},

            The final payment of ₹{final_amount} for booking {booking_id}
            is due by {final_payment_due_date}.
            """,
    ),
    NotificationTemplate.BOOKING_COMPLETED_USER: (
        "Payment Received - {booking_id}",
        """
            Hello {customer_name},

            We received your final payment of ₹{final_amount}.
            Booking {booking_id} is fully paid. Thank you!
            """,
    ),
    NotificationTemplate.BOOKING_COMPLETED_VENDOR: (
        "Final Payment Received - {booking_id}",
        """
            Hello,

            {customer_name} completed the final payment of ₹{final_amount}
            for booking {booking_id}.
            """,
    ),
    NotificationTemplate.BOOKING_CANCELLED_USER: (
        "Booking Cancelled - {booking_id}",
        """
            Hello {customer_name},

            Booking {booking_id} has been cancelled.

            Refund: ₹{refund_amount} ({refund_percentage}% of the advance)
            Reason: {cancellation_reason}
            """,
    ),
    NotificationTemplate.BOOKING_CANCELLED_VENDOR: (
        "Booking Cancelled by Client - {booking_id}",
        """
            Hello,

            {customer_name} cancelled booking {booking_id}.
            The dates {requested_dates} are available again.

            Cancellation fee credited: ₹{vendor_fee}
            """,
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return "-"


def render(template: NotificationTemplate, payload: dict) -> Tuple[str, str]:
    subject, body = TEMPLATES[template]
    values = _Defaults(payload)
    return subject.format_map(values), body.format_map(values)
