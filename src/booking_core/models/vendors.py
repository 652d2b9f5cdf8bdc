from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Set


@dataclass
class Vendor:
    vendor_id: str
    name: str
    email: str
    company_name: Optional[str] = None
    contact_info: Optional[str] = None
    booked_dates: Set[str] = field(default_factory=set)
    wallet_balance: Decimal = Decimal("0")
