from decimal import Decimal

CALENDAR_DATE_FORMAT = "%d/%m/%Y"

MAX_BOOKING_DAYS = 30

ADVANCE_PERCENTAGE = Decimal("0.30")

ADVANCE_DUE_DAYS = 3
ADVANCE_DUE_DAYS_URGENT = 1
MIN_DAYS_BETWEEN_DUE_AND_EVENT = 7

FINAL_PAYMENT_GRACE_DAYS = 7

MIN_ACCEPT_LEAD_DAYS = 5

EARLY_CANCELLATION_MAX_ELAPSED_PCT = 10
PARTIAL_REFUND_MAX_ELAPSED_PCT = 60
EARLY_CANCELLATION_USER_REFUND_PCT = 95
EARLY_CANCELLATION_VENDOR_FEE_PCT = 5
PARTIAL_REFUND_USER_REFUND_PCT = 70
PARTIAL_REFUND_VENDOR_FEE_PCT = 30

CHECKOUT_SESSION_EXPIRY_MINUTES = 30
PAYMENT_CURRENCY = "inr"

EVENT_REMINDER_LEAD_DAYS = 1

REQUEST_ID_PREFIX = "ID"
