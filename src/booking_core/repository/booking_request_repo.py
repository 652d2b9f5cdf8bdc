from botocore.exceptions import ClientError
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from boto3.dynamodb.conditions import Key
from booking_core.models.booking_requests import (
    AdvancePayment,
    AdvancePaymentStatus,
    BookingRequest,
    RequestStatus,
    ServiceType,
)
from booking_core.utils.custom_exceptions import ConflictError
from booking_core.utils.datetime_normaliser import from_iso_string, to_iso
from booking_core.utils.dynamo_errors import is_condition_failure
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)

PENDING_ADVANCE_PK = "PENDING_ADVANCE"

# statuses after which the (vendor, user, date, service) slot may be requested again
SLOT_RELEASING_STATUSES = {
    RequestStatus.REJECTED,
    RequestStatus.REVOKED,
    RequestStatus.PAYMENT_OVERDUE,
}


def details_key(request_id: str) -> dict:
    return {"pk": f"REQUEST#{request_id}", "sk": "DETAILS"}


def user_index_key(request: BookingRequest) -> dict:
    return {"pk": f"USER#{request.user_id}", "sk": f"REQUEST#{request.request_id}"}


def vendor_index_key(request: BookingRequest) -> dict:
    return {"pk": f"VENDOR#{request.vendor_id}", "sk": f"REQUEST#{request.request_id}"}


def slot_key(request: BookingRequest) -> dict:
    return {
        "pk": (
            f"SLOT#{request.vendor_id}#{request.user_id}"
            f"#{request.starting_date.isoformat()}#{request.service_type.value}"
        ),
        "sk": "LOCK",
    }


def pending_advance_key(request: BookingRequest) -> dict:
    return {
        "pk": PENDING_ADVANCE_PK,
        "sk": f"DUE#{to_iso(request.advance_payment_due_date)}#REQUEST#{request.request_id}",
    }


class BookingRequestRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    def _item(self, request: BookingRequest, key: dict) -> dict:
        item = {
            **key,
            "request_id": request.request_id,
            "user_id": request.user_id,
            "vendor_id": request.vendor_id,
            "name": request.name,
            "email": request.email,
            "phone": request.phone,
            "venue": request.venue,
            "service_type": request.service_type.value,
            "package_id": request.package_id,
            "customizations": list(request.customizations),
            "message": request.message,
            "starting_date": request.starting_date.isoformat(),
            "number_of_days": request.number_of_days,
            "total_price": Decimal(str(request.total_price)),
            "booking_status": request.status.value,
            "requested_dates": list(request.requested_dates),
            "version": request.version,
            "created_at": to_iso(request.created_at),
            "updated_at": to_iso(request.updated_at),
        }
        if request.advance_payment_due_date is not None:
            item["advance_payment_due_date"] = to_iso(request.advance_payment_due_date)
        if request.advance_payment is not None:
            payment = {
                "amount": Decimal(str(request.advance_payment.amount)),
                "status": request.advance_payment.status.value,
            }
            if request.advance_payment.paid_at is not None:
                payment["paid_at"] = to_iso(request.advance_payment.paid_at)
            item["advance_payment"] = payment
        if request.rejection_reason:
            item["rejection_reason"] = request.rejection_reason
        return item

    def _put(self, request: BookingRequest, key: dict, condition: Optional[dict] = None) -> dict:
        put = {"TableName": self.table.name, "Item": self._item(request, key)}
        if condition:
            put.update(condition)
        return {"Put": put}

    def _delete(self, key: dict, condition: Optional[dict] = None) -> dict:
        delete = {"TableName": self.table.name, "Key": key}
        if condition:
            delete.update(condition)
        return {"Delete": delete}

    def create(self, request: BookingRequest):
        try:
            self.client.transact_write_items(
                TransactItems=[
                    self._put(
                        request,
                        details_key(request.request_id),
                        {"ConditionExpression": "attribute_not_exists(pk)"},
                    ),
                    self._put(request, user_index_key(request)),
                    self._put(request, vendor_index_key(request)),
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**slot_key(request), "request_id": request.request_id},
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                ]
            )
        except ClientError as err:
            if is_condition_failure(err):
                raise ConflictError(
                    "You already have a booking request with this vendor "
                    "for this date and service type"
                )
            logger.error(f"Error creating booking request {request.request_id}: {err}")
            raise

    def get_by_id(self, request_id: str) -> Optional[BookingRequest]:
        try:
            response = self.table.get_item(Key=details_key(request_id))
        except ClientError as err:
            logger.error(f"Error retrieving booking request {request_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(item)

    def update(self, request: BookingRequest, expected_status: RequestStatus):
        """Writes a state transition, conditional on the stored status and version.

        On success ``request.version`` is bumped to the stored value.
        """
        previous_version = request.version
        request.version = previous_version + 1
        condition = {
            "ConditionExpression": "booking_status = :expected AND #version = :version",
            "ExpressionAttributeNames": {"#version": "version"},
            "ExpressionAttributeValues": {
                ":expected": expected_status.value,
                ":version": previous_version,
            },
        }
        items = [
            self._put(request, details_key(request.request_id), condition),
            self._put(request, user_index_key(request)),
            self._put(request, vendor_index_key(request)),
        ]
        if request.is_awaiting_advance:
            items.append(
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": {
                            **pending_advance_key(request),
                            "request_id": request.request_id,
                        },
                    }
                }
            )
        if (
            request.status == RequestStatus.PAYMENT_OVERDUE
            and request.advance_payment_due_date is not None
        ):
            items.append(self._delete(pending_advance_key(request)))
        if request.status in SLOT_RELEASING_STATUSES:
            items.append(self._delete(slot_key(request)))

        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            request.version = previous_version
            if is_condition_failure(err):
                raise ConflictError(
                    f"Booking request {request.request_id} was modified concurrently"
                )
            logger.error(f"Error updating booking request {request.request_id}: {err}")
            raise

    def delete_items(self, request: BookingRequest) -> List[dict]:
        """Transaction items removing a request and every index pointing at it."""
        items = [
            self._delete(
                details_key(request.request_id),
                {
                    "ConditionExpression": "booking_status = :expected AND #version = :version",
                    "ExpressionAttributeNames": {"#version": "version"},
                    "ExpressionAttributeValues": {
                        ":expected": request.status.value,
                        ":version": request.version,
                    },
                },
            ),
            self._delete(user_index_key(request)),
            self._delete(vendor_index_key(request)),
            self._delete(slot_key(request)),
        ]
        if request.advance_payment_due_date is not None:
            items.append(self._delete(pending_advance_key(request)))
        return items

    def find_by_user(self, user_id: str) -> List[BookingRequest]:
        return self._query_index(f"USER#{user_id}")

    def find_by_vendor(self, vendor_id: str) -> List[BookingRequest]:
        return self._query_index(f"VENDOR#{vendor_id}")

    def _query_index(self, pk: str) -> List[BookingRequest]:
        condition = Key("pk").eq(pk) & Key("sk").begins_with("REQUEST#")
        items = self._query_all(condition)
        requests = [self._to_domain(item) for item in items]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests

    def find_overdue(self, now: datetime) -> List[BookingRequest]:
        """Accepted requests whose advance payment is still pending past its due date."""
        condition = Key("pk").eq(PENDING_ADVANCE_PK) & Key("sk").lt(f"DUE#{to_iso(now)}")
        overdue = []
        for item in self._query_all(condition):
            request = self.get_by_id(item["request_id"])
            if request is None:
                continue
            if request.is_awaiting_advance and request.advance_payment_due_date < now:
                overdue.append(request)
        return overdue

    def _query_all(self, condition) -> List[dict]:
        try:
            resp = self.table.query(KeyConditionExpression=condition)
            items = resp.get("Items", [])
            while "LastEvaluatedKey" in resp:
                resp = self.table.query(
                    KeyConditionExpression=condition,
                    ExclusiveStartKey=resp["LastEvaluatedKey"],
                )
                items.extend(resp.get("Items", []))
        except ClientError as err:
            logger.error(f"Error querying booking requests: {err}")
            raise
        return items

    @staticmethod
    def _to_domain(item: dict) -> BookingRequest:
        advance = None
        if item.get("advance_payment"):
            payment = item["advance_payment"]
            advance = AdvancePayment(
                amount=Decimal(str(payment["amount"])),
                status=AdvancePaymentStatus(payment["status"]),
                paid_at=from_iso_string(payment["paid_at"]) if payment.get("paid_at") else None,
            )
        due = item.get("advance_payment_due_date")
        return BookingRequest(
            request_id=item["request_id"],
            user_id=item["user_id"],
            vendor_id=item["vendor_id"],
            name=item["name"],
            email=item["email"],
            phone=item["phone"],
            venue=item["venue"],
            service_type=ServiceType(item["service_type"]),
            package_id=item["package_id"],
            customizations=list(item.get("customizations", [])),
            message=item.get("message", ""),
            starting_date=date.fromisoformat(item["starting_date"]),
            number_of_days=int(item["number_of_days"]),
            total_price=Decimal(str(item["total_price"])),
            status=RequestStatus(item["booking_status"]),
            requested_dates=list(item.get("requested_dates", [])),
            advance_payment_due_date=from_iso_string(due) if due else None,
            advance_payment=advance,
            rejection_reason=item.get("rejection_reason"),
            version=int(item.get("version", 0)),
            created_at=from_iso_string(item["created_at"]),
            updated_at=from_iso_string(item["updated_at"]),
        )
