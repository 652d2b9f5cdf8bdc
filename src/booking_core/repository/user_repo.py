from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional
from booking_core.models.users import User
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object

logger = logging.getLogger(__name__)


class UserRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    @staticmethod
    def key(user_id: str) -> dict:
        return {"pk": f"USER#{user_id}", "sk": "DETAILS"}

    def get_by_id(self, user_id: str) -> Optional[User]:
        try:
            response = self.table.get_item(Key=self.key(user_id))
        except ClientError as err:
            logger.error(f"Error retrieving user by id {user_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None

        return self._to_domain(item=item)

    @staticmethod
    def _to_domain(item: dict) -> User:
        return User(
            user_id=item["pk"].split("#", 1)[1],
            name=item["name"],
            email=item["email"],
            wallet_balance=Decimal(str(item.get("wallet_balance", 0))),
        )
