from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from booking_core.models.booking_requests import ServiceType


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


@dataclass
class BookingAdvancePayment:
    amount: Decimal
    payment_id: str
    paid_at: datetime
    status: PaymentStatus = PaymentStatus.COMPLETED
    refunded_at: Optional[datetime] = None


@dataclass
class FinalPayment:
    amount: Decimal
    due_date: datetime
    status: PaymentStatus = PaymentStatus.PENDING
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None


@dataclass
class ConfirmedBooking:
    booking_id: str
    user_id: str
    vendor_id: str
    name: str
    email: str
    phone: str
    venue: str
    service_type: ServiceType
    package_id: str
    starting_date: date
    number_of_days: int
    total_amount: Decimal
    advance_payment: BookingAdvancePayment
    final_payment: FinalPayment
    requested_dates: List[str] = field(default_factory=list)
    customizations: List[str] = field(default_factory=list)
    status: BookingStatus = BookingStatus.CONFIRMED
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    version: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED)
