from dataclasses import dataclass
from decimal import Decimal


@dataclass
class User:
    user_id: str
    email: str
    name: str
    wallet_balance: Decimal = Decimal("0")
