from typing import Optional


class BookingError(Exception):
    code = "BOOKING_ERROR"
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def __str__(self):
        return self.message


class NotFoundException(BookingError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: str, status_code: int = 404):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' not found", status_code)


class ConflictError(BookingError):
    code = "CONFLICT"
    status_code = 409


class DateConflictError(ConflictError):
    code = "DATES_UNAVAILABLE"

    def __init__(self, conflicting_dates: list[str]):
        self.conflicting_dates = conflicting_dates
        super().__init__(
            "the following dates are unavailable: " + ", ".join(conflicting_dates)
        )


class ValidationFailed(BookingError):
    code = "VALIDATION_FAILED"
    status_code = 400


class PolicyDenied(BookingError):
    code = "POLICY_DENIED"
    status_code = 422


class PaymentGatewayError(BookingError):
    code = "PAYMENT_GATEWAY_ERROR"
    status_code = 502

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        error_type: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, 503 if retryable else None)
        self.retryable = retryable
        self.error_type = error_type
        self.error_code = error_code


class RefundAlreadyProcessed(PaymentGatewayError):
    code = "ALREADY_REFUNDED"
    status_code = 409

    def __init__(self, message: str, error_type: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message, retryable=False, error_type=error_type, error_code=error_code)


class InternalError(BookingError):
    code = "INTERNAL_ERROR"
    status_code = 500
