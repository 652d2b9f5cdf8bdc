from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional


@dataclass
class CustomizationOption:
    option_id: str
    name: str
    price: Decimal


@dataclass
class Package:
    package_id: str
    vendor_id: str
    service_type: str
    price: Decimal
    customization_options: List[CustomizationOption] = field(default_factory=list)

    def find_option(self, option_id: str) -> Optional[CustomizationOption]:
        for option in self.customization_options:
            if option.option_id == option_id:
                return option
        return None
