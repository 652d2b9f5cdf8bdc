from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4


class TransactionType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class PaymentType(str, Enum):
    BOOKING = "BOOKING"
    REFUND = "REFUND"
    CANCELLATION = "CANCELLATION"
    OTHER = "OTHER"


class PaymentMethod(str, Enum):
    STRIPE = "STRIPE"
    RAZORPAY = "RAZORPAY"


@dataclass(frozen=True)
class Transaction:
    amount: Decimal
    transaction_type: TransactionType
    payment_type: PaymentType
    payment_method: PaymentMethod
    payment_id: str
    booking_id: str
    status: str = "COMPLETED"
    transaction_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
