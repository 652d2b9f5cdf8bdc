from botocore.exceptions import ClientError
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from boto3.dynamodb.conditions import Key
from booking_core.models.booking_requests import BookingRequest, ServiceType
from booking_core.models.bookings import (
    BookingAdvancePayment,
    BookingStatus,
    ConfirmedBooking,
    FinalPayment,
    PaymentStatus,
)
from booking_core.models.transactions import Transaction
from booking_core.repository.booking_request_repo import BookingRequestRepository
from booking_core.repository.transaction_items import transaction_to_item
from booking_core.repository.user_repo import UserRepository
from booking_core.repository.vendor_repo import VendorRepository
from booking_core.utils.custom_exceptions import ConflictError, DateConflictError
from booking_core.utils.datetime_normaliser import from_iso_string, to_iso
from booking_core.utils.dynamo_errors import (
    TRANSACTION_CANCELED,
    error_code,
    failed_item_indexes,
    is_condition_failure,
)
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)

# positions inside the confirmation transaction
_CONFIRM_BOOKING_PUT = 0
_CONFIRM_VENDOR_DATES = 3
_CONFIRM_REQUEST_DELETE = 4


class BookingRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client
        self.request_repo = BookingRequestRepository(table, self.client)

    @staticmethod
    def _keys(booking: ConfirmedBooking) -> List[dict]:
        return [
            {"pk": f"BOOKING#{booking.booking_id}", "sk": "DETAILS"},
            {"pk": f"USER#{booking.user_id}", "sk": f"BOOKING#{booking.booking_id}"},
            {"pk": f"VENDOR#{booking.vendor_id}", "sk": f"BOOKING#{booking.booking_id}"},
        ]

    def _item(self, booking: ConfirmedBooking, key: dict) -> dict:
        advance = booking.advance_payment
        final = booking.final_payment
        advance_item = {
            "amount": Decimal(str(advance.amount)),
            "status": advance.status.value,
            "payment_id": advance.payment_id,
            "paid_at": to_iso(advance.paid_at),
        }
        if advance.refunded_at is not None:
            advance_item["refunded_at"] = to_iso(advance.refunded_at)
        final_item = {
            "amount": Decimal(str(final.amount)),
            "due_date": to_iso(final.due_date),
            "status": final.status.value,
        }
        if final.payment_id:
            final_item["payment_id"] = final.payment_id
        if final.paid_at is not None:
            final_item["paid_at"] = to_iso(final.paid_at)

        item = {
            **key,
            "booking_id": booking.booking_id,
            "user_id": booking.user_id,
            "vendor_id": booking.vendor_id,
            "name": booking.name,
            "email": booking.email,
            "phone": booking.phone,
            "venue": booking.venue,
            "service_type": booking.service_type.value,
            "package_id": booking.package_id,
            "customizations": list(booking.customizations),
            "starting_date": booking.starting_date.isoformat(),
            "number_of_days": booking.number_of_days,
            "total_amount": Decimal(str(booking.total_amount)),
            "advance_payment": advance_item,
            "final_payment": final_item,
            "requested_dates": list(booking.requested_dates),
            "booking_status": booking.status.value,
            "version": booking.version,
            "created_at": to_iso(booking.created_at),
        }
        if booking.cancellation_reason:
            item["cancellation_reason"] = booking.cancellation_reason
        if booking.cancelled_at is not None:
            item["cancelled_at"] = to_iso(booking.cancelled_at)
        return item

    def _puts(self, booking: ConfirmedBooking, details_condition: Optional[dict] = None) -> List[dict]:
        puts = []
        for index, key in enumerate(self._keys(booking)):
            put = {"TableName": self.table.name, "Item": self._item(booking, key)}
            if index == 0 and details_condition:
                put.update(details_condition)
            puts.append({"Put": put})
        return puts

    @staticmethod
    def _status_condition(expected: BookingStatus, version: int) -> dict:
        return {
            "ConditionExpression": "booking_status = :expected AND #version = :version",
            "ExpressionAttributeNames": {"#version": "version"},
            "ExpressionAttributeValues": {
                ":expected": expected.value,
                ":version": version,
            },
        }

    def confirm(self, booking: ConfirmedBooking, request: BookingRequest):
        """Persists the booking, commits its dates to the vendor and deletes the request.

        All of it happens in one transaction: the vendor update only succeeds
        if none of the dates is already booked.
        """
        dates = list(booking.requested_dates)
        date_values = {f":d{i}": d for i, d in enumerate(dates)}
        free_check = " AND ".join(f"NOT contains(booked_dates, :d{i})" for i in range(len(dates)))
        vendor_update = {
            "Update": {
                "TableName": self.table.name,
                "Key": VendorRepository.key(booking.vendor_id),
                "UpdateExpression": "ADD booked_dates :dates",
                "ConditionExpression": "attribute_exists(pk)"
                + (f" AND {free_check}" if free_check else ""),
                "ExpressionAttributeValues": {":dates": set(dates), **date_values},
            }
        }
        items = self._puts(booking, {"ConditionExpression": "attribute_not_exists(pk)"})
        items.append(vendor_update)
        items.extend(self.request_repo.delete_items(request))

        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            if error_code(err) == TRANSACTION_CANCELED:
                failed = failed_item_indexes(err)
                if _CONFIRM_VENDOR_DATES in failed:
                    raise DateConflictError(self._taken_dates(booking.vendor_id, dates))
                if _CONFIRM_BOOKING_PUT in failed:
                    raise ConflictError(f"Booking {booking.booking_id} is already confirmed")
                if _CONFIRM_REQUEST_DELETE in failed:
                    raise ConflictError(
                        f"Booking request {request.request_id} is no longer awaiting payment"
                    )
            logger.error(f"Error confirming booking {booking.booking_id}: {err}")
            raise

    def _taken_dates(self, vendor_id: str, dates: List[str]) -> List[str]:
        response = self.table.get_item(Key=VendorRepository.key(vendor_id))
        booked = set((response.get("Item") or {}).get("booked_dates") or [])
        return [d for d in dates if d in booked] or dates

    def update(self, booking: ConfirmedBooking, expected_status: BookingStatus):
        previous_version = booking.version
        booking.version = previous_version + 1
        items = self._puts(booking, self._status_condition(expected_status, previous_version))
        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            booking.version = previous_version
            if is_condition_failure(err):
                raise ConflictError(f"Booking {booking.booking_id} was modified concurrently")
            logger.error(f"Error updating booking {booking.booking_id}: {err}")
            raise

    def apply_cancellation_effects(
        self,
        booking: ConfirmedBooking,
        user_transaction: Transaction,
        vendor_transaction: Transaction,
    ):
        """Cancellation as one unit: booking status, both ledgers and the date release."""
        previous_version = booking.version
        booking.version = previous_version + 1
        items = self._puts(
            booking, self._status_condition(BookingStatus.CONFIRMED, previous_version)
        )

        vendor_expression = "ADD wallet_balance :amount"
        vendor_values = {":amount": Decimal(str(vendor_transaction.amount))}
        if booking.requested_dates:
            vendor_expression += " DELETE booked_dates :dates"
            vendor_values[":dates"] = set(booking.requested_dates)

        items.extend(
            [
                {
                    "Update": {
                        "TableName": self.table.name,
                        "Key": UserRepository.key(booking.user_id),
                        "UpdateExpression": "ADD wallet_balance :amount",
                        "ConditionExpression": "attribute_exists(pk)",
                        "ExpressionAttributeValues": {
                            ":amount": Decimal(str(user_transaction.amount))
                        },
                    }
                },
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": transaction_to_item(f"USER#{booking.user_id}", user_transaction),
                    }
                },
                {
                    "Update": {
                        "TableName": self.table.name,
                        "Key": VendorRepository.key(booking.vendor_id),
                        "UpdateExpression": vendor_expression,
                        "ConditionExpression": "attribute_exists(pk)",
                        "ExpressionAttributeValues": vendor_values,
                    }
                },
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": transaction_to_item(
                            f"VENDOR#{booking.vendor_id}", vendor_transaction
                        ),
                    }
                },
            ]
        )

        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            booking.version = previous_version
            if is_condition_failure(err):
                raise ConflictError(
                    f"Booking {booking.booking_id} could not be cancelled; it changed concurrently"
                )
            logger.error(f"Error applying cancellation of booking {booking.booking_id}: {err}")
            raise

    def get_by_id(self, booking_id: str) -> Optional[ConfirmedBooking]:
        try:
            response = self.table.get_item(
                Key={"pk": f"BOOKING#{booking_id}", "sk": "DETAILS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving booking {booking_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(item)

    def find_by_user(self, user_id: str) -> List[ConfirmedBooking]:
        return self._query_index(f"USER#{user_id}")

    def find_by_vendor(self, vendor_id: str) -> List[ConfirmedBooking]:
        return self._query_index(f"VENDOR#{vendor_id}")

    def _query_index(self, pk: str) -> List[ConfirmedBooking]:
        condition = Key("pk").eq(pk) & Key("sk").begins_with("BOOKING#")
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
            logger.error(f"Error retrieving bookings for {pk}: {err}")
            raise

        bookings = [self._to_domain(item) for item in items]
        bookings.sort(key=lambda b: b.created_at, reverse=True)
        return bookings

    @staticmethod
    def _to_domain(item: dict) -> ConfirmedBooking:
        advance = item["advance_payment"]
        final = item["final_payment"]
        return ConfirmedBooking(
            booking_id=item["booking_id"],
            user_id=item["user_id"],
            vendor_id=item["vendor_id"],
            name=item["name"],
            email=item["email"],
            phone=item["phone"],
            venue=item["venue"],
            service_type=ServiceType(item["service_type"]),
            package_id=item["package_id"],
            customizations=list(item.get("customizations", [])),
            starting_date=date.fromisoformat(item["starting_date"]),
            number_of_days=int(item["number_of_days"]),
            total_amount=Decimal(str(item["total_amount"])),
            advance_payment=BookingAdvancePayment(
                amount=Decimal(str(advance["amount"])),
                status=PaymentStatus(advance["status"]),
                payment_id=advance["payment_id"],
                paid_at=from_iso_string(advance["paid_at"]),
                refunded_at=(
                    from_iso_string(advance["refunded_at"])
                    if advance.get("refunded_at")
                    else None
                ),
            ),
            final_payment=FinalPayment(
                amount=Decimal(str(final["amount"])),
                due_date=from_iso_string(final["due_date"]),
                status=PaymentStatus(final["status"]),
                payment_id=final.get("payment_id"),
                paid_at=from_iso_string(final["paid_at"]) if final.get("paid_at") else None,
            ),
            requested_dates=list(item.get("requested_dates", [])),
            status=BookingStatus(item["booking_status"]),
            cancellation_reason=item.get("cancellation_reason"),
            cancelled_at=(
                from_iso_string(item["cancelled_at"]) if item.get("cancelled_at") else None
            ),
            version=int(item.get("version", 0)),
            created_at=from_iso_string(item["created_at"]),
        )
