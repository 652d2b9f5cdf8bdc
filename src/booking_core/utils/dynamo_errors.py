from typing import Optional

from botocore.exceptions import ClientError

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"


def error_code(err: ClientError) -> Optional[str]:
    return err.response.get("Error", {}).get("Code")


def cancellation_reasons(err: ClientError) -> list[str]:
    """Per-item reason codes of a cancelled TransactWriteItems call."""
    reasons = err.response.get("CancellationReasons") or []
    return [reason.get("Code", "None") for reason in reasons]


def is_condition_failure(err: ClientError) -> bool:
    code = error_code(err)
    if code == CONDITIONAL_CHECK_FAILED:
        return True
    if code == TRANSACTION_CANCELED:
        return "ConditionalCheckFailed" in cancellation_reasons(err)
    return False


def failed_item_indexes(err: ClientError) -> list[int]:
    return [
        index
        for index, code in enumerate(cancellation_reasons(err))
        if code == "ConditionalCheckFailed"
    ]
