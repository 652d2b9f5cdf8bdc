from pydantic import BaseModel
from typing import Any, Generic, TypeVar, Optional

from booking_core.utils.custom_exceptions import InternalError

T = TypeVar("T")

GENERIC_ERROR_MESSAGE = "Something went wrong, please try again"


class APIResponse(BaseModel, Generic[T]):
    status_code: int
    message: str
    code: Optional[str] = None
    data: Optional[T] = None


def send_custom_response(
    status_code: int, message: str, data: Optional[Any] = None, code: Optional[str] = None
):
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
        },
        "body": APIResponse(
            status_code=status_code, message=message, code=code, data=data
        ).model_dump_json(),
    }


def send_error_response(err):
    """Envelope for a BookingError; conflicting dates travel in ``data``.

    Internal errors only reach the logs, the caller gets a generic message.
    """
    if isinstance(err, InternalError):
        return send_custom_response(err.status_code, GENERIC_ERROR_MESSAGE, code=err.code)
    data = None
    if getattr(err, "conflicting_dates", None):
        data = {"conflicting_dates": err.conflicting_dates}
    return send_custom_response(err.status_code, err.message, data=data, code=err.code)
