from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional
from booking_core.models.vendors import Vendor
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object

logger = logging.getLogger(__name__)


class VendorRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    @staticmethod
    def key(vendor_id: str) -> dict:
        return {"pk": f"VENDOR#{vendor_id}", "sk": "DETAILS"}

    def get_by_id(self, vendor_id: str) -> Optional[Vendor]:
        try:
            response = self.table.get_item(Key=self.key(vendor_id))
        except ClientError as err:
            logger.error(f"Error retrieving vendor by id {vendor_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(item)

    @staticmethod
    def _to_domain(item: dict) -> Vendor:
        # booked_dates is a string set; DynamoDB drops the attribute once it is empty
        return Vendor(
            vendor_id=item["pk"].split("#", 1)[1],
            name=item["name"],
            email=item["email"],
            company_name=item.get("company_name"),
            contact_info=item.get("contact_info"),
            booked_dates=set(item.get("booked_dates") or []),
            wallet_balance=Decimal(str(item.get("wallet_balance", 0))),
        )
