from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional


class RequestStatus(str, Enum):
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"
    PAYMENT_OVERDUE = "PAYMENT_OVERDUE"


class AdvancePaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"


class ServiceType(str, Enum):
    ENGAGEMENT = "Engagement"
    WEDDING = "Wedding"
    BIRTHDAY = "Birthday Party"
    OUTDOOR_SHOOT = "Outdoor Shoot"


@dataclass
class AdvancePayment:
    amount: Decimal
    status: AdvancePaymentStatus = AdvancePaymentStatus.PENDING
    paid_at: Optional[datetime] = None


@dataclass
class BookingRequest:
    request_id: str
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
    total_price: Decimal
    message: str = ""
    customizations: List[str] = field(default_factory=list)
    status: RequestStatus = RequestStatus.REQUESTED

    # populated on acceptance
    requested_dates: List[str] = field(default_factory=list)
    advance_payment_due_date: Optional[datetime] = None
    advance_payment: Optional[AdvancePayment] = None

    rejection_reason: Optional[str] = None
    version: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_awaiting_advance(self) -> bool:
        return (
            self.status == RequestStatus.ACCEPTED
            and self.advance_payment is not None
            and self.advance_payment.status == AdvancePaymentStatus.PENDING
        )
