from decimal import Decimal

from booking_core.models.transactions import Transaction
from booking_core.utils.datetime_normaliser import to_iso


def transaction_to_item(owner_pk: str, txn: Transaction) -> dict:
    created_at = to_iso(txn.created_at)
    return {
        "pk": owner_pk,
        "sk": f"TXN#{created_at}#{txn.transaction_id}",
        "transaction_id": txn.transaction_id,
        "amount": Decimal(str(txn.amount)),
        "transaction_type": txn.transaction_type.value,
        "payment_type": txn.payment_type.value,
        "payment_method": txn.payment_method.value,
        "payment_id": txn.payment_id,
        "booking_id": txn.booking_id,
        "status": txn.status,
        "created_at": created_at,
    }
