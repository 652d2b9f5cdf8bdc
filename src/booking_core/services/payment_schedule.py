from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from booking_core.utils.constants import (
    ADVANCE_DUE_DAYS,
    ADVANCE_DUE_DAYS_URGENT,
    ADVANCE_PERCENTAGE,
    FINAL_PAYMENT_GRACE_DAYS,
    MIN_DAYS_BETWEEN_DUE_AND_EVENT,
)
from booking_core.utils.datetime_normaliser import utc_midnight


@dataclass(frozen=True)
class PaymentSplit:
    advance_amount: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class DueDates:
    advance_payment_due: datetime
    final_payment_due: datetime
    event_date: datetime
    event_end_date: datetime


def split_payment(total_price: Decimal | int) -> PaymentSplit:
    total = Decimal(total_price)
    advance = (total * ADVANCE_PERCENTAGE).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return PaymentSplit(advance_amount=advance, final_amount=total - advance)


def compute_due_dates(starting_date: date, number_of_days: int, now: datetime) -> DueDates:
    event_date = utc_midnight(starting_date)
    event_end_date = event_date + timedelta(days=number_of_days)

    today = utc_midnight(now)
    advance_due = today + timedelta(days=ADVANCE_DUE_DAYS)
    if (event_date - advance_due).days < MIN_DAYS_BETWEEN_DUE_AND_EVENT:
        # event is close; give the customer only a day to pay
        advance_due = today + timedelta(days=ADVANCE_DUE_DAYS_URGENT)

    return DueDates(
        advance_payment_due=advance_due,
        final_payment_due=event_end_date + timedelta(days=FINAL_PAYMENT_GRACE_DAYS),
        event_date=event_date,
        event_end_date=event_end_date,
    )
