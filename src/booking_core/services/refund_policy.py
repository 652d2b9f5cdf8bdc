"""
Cancellation refund policy for confirmed bookings.

The refund tier depends on how much of the window between the advance
payment and the event has already elapsed when the customer cancels:

    elapsed % = (total window - days remaining) / total window * 100

Up to 10% elapsed the customer gets 95% of the advance back (vendor keeps
5%), up to 60% the split is 70/30, and after that cancellation is refused.
"""
from dataclasses import dataclass
from datetime import date, datetime

from booking_core.utils.constants import (
    EARLY_CANCELLATION_MAX_ELAPSED_PCT,
    EARLY_CANCELLATION_USER_REFUND_PCT,
    EARLY_CANCELLATION_VENDOR_FEE_PCT,
    PARTIAL_REFUND_MAX_ELAPSED_PCT,
    PARTIAL_REFUND_USER_REFUND_PCT,
    PARTIAL_REFUND_VENDOR_FEE_PCT,
)
from booking_core.utils.datetime_normaliser import days_between, utc_midnight

REASON_EVENT_OCCURRED = "Event has already occurred"
REASON_EARLY = "Early cancellation"
REASON_PARTIAL = "Partial refund period"
REASON_TOO_CLOSE = "Cancellation not permitted - too close to event"


@dataclass(frozen=True)
class RefundDecision:
    is_eligible: bool
    user_refund_percentage: int
    vendor_fee_percentage: int
    reason: str


def _not_eligible(reason: str) -> RefundDecision:
    return RefundDecision(False, 0, 0, reason)


def refund_tier(elapsed_pct: float, remaining_days: int) -> RefundDecision:
    if remaining_days < 0:
        return _not_eligible(REASON_EVENT_OCCURRED)
    if elapsed_pct <= EARLY_CANCELLATION_MAX_ELAPSED_PCT:
        return RefundDecision(
            True,
            EARLY_CANCELLATION_USER_REFUND_PCT,
            EARLY_CANCELLATION_VENDOR_FEE_PCT,
            REASON_EARLY,
        )
    if elapsed_pct <= PARTIAL_REFUND_MAX_ELAPSED_PCT:
        return RefundDecision(
            True,
            PARTIAL_REFUND_USER_REFUND_PCT,
            PARTIAL_REFUND_VENDOR_FEE_PCT,
            REASON_PARTIAL,
        )
    return _not_eligible(REASON_TOO_CLOSE)


def calculate_refund_eligibility(
    paid_at: datetime, event_date: date | datetime, now: datetime
) -> RefundDecision:
    event_start = utc_midnight(event_date)
    total_window = days_between(paid_at, event_start)
    remaining = days_between(now, event_start)

    if remaining < 0:
        return _not_eligible(REASON_EVENT_OCCURRED)
    # paid on (or after) the event day: nothing to pro-rate against
    if total_window <= 0:
        return _not_eligible(REASON_TOO_CLOSE)

    elapsed_pct = (total_window - remaining) / total_window * 100
    return refund_tier(elapsed_pct, remaining)
