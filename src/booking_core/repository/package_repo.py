from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional
from booking_core.models.packages import CustomizationOption, Package
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
else:
    Table = object

logger = logging.getLogger(__name__)


class PackageRepository:
    def __init__(self, table: Table):
        self.table = table

    def get_by_id(self, package_id: str) -> Optional[Package]:
        try:
            response = self.table.get_item(
                Key={"pk": f"PACKAGE#{package_id}", "sk": "DETAILS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving package {package_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None

        options = [
            CustomizationOption(
                option_id=option["option_id"],
                name=option.get("name", ""),
                price=Decimal(str(option["price"])),
            )
            for option in item.get("customization_options", [])
        ]
        return Package(
            package_id=package_id,
            vendor_id=item["vendor_id"],
            service_type=item.get("service_type", ""),
            price=Decimal(str(item["price"])),
            customization_options=options,
        )
