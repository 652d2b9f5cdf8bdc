import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN
from typing import Optional

import stripe

from booking_core.utils.constants import CHECKOUT_SESSION_EXPIRY_MINUTES, PAYMENT_CURRENCY
from booking_core.utils.custom_exceptions import PaymentGatewayError, RefundAlreadyProcessed
from booking_core.utils.datetime_normaliser import utc_now

logger = logging.getLogger(__name__)

ALREADY_REFUNDED_CODE = "charge_already_refunded"


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: Optional[str]


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_DOWN))


class PaymentService:
    """Stripe Checkout for collecting payments, Stripe Refunds for giving them back.

    Calls go through a requests client with an explicit timeout and no
    automatic network retries, so a refund is never silently repeated.
    """

    def __init__(
        self,
        api_key: str,
        success_url: str,
        cancel_url: str,
        timeout_seconds: float = 10,
    ):
        stripe.api_key = api_key
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
        stripe.max_network_retries = 0
        self.success_url = success_url
        self.cancel_url = cancel_url

    def create_checkout_session(
        self,
        amount: Decimal,
        product_name: str,
        description: str,
        metadata: dict,
        now: Optional[datetime] = None,
    ) -> CheckoutSession:
        now = now or utc_now()
        expires_at = now + timedelta(minutes=CHECKOUT_SESSION_EXPIRY_MINUTES)
        try:
            session = stripe.checkout.Session.create(
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                mode="payment",
                expires_at=int(expires_at.timestamp()),
                line_items=[
                    {
                        "price_data": {
                            "currency": PAYMENT_CURRENCY,
                            "product_data": {
                                "name": product_name,
                                "description": description,
                            },
                            "unit_amount": to_minor_units(amount),
                        },
                        "quantity": 1,
                    }
                ],
                metadata={k: str(v) for k, v in metadata.items()},
            )
        except stripe.StripeError as err:
            raise self._translate(err, "create checkout session") from err
        return CheckoutSession(session_id=session.id, url=session.url)

    def retrieve_payment_intent(self, session_id: str) -> str:
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as err:
            raise self._translate(err, "retrieve checkout session") from err

        payment_intent = session.payment_intent
        if not payment_intent or not isinstance(payment_intent, str):
            raise PaymentGatewayError(
                f"No payment intent found for checkout session {session_id}",
                error_type="missing_payment_intent",
            )
        return payment_intent

    def create_refund(self, payment_intent_id: str, amount: Decimal, idempotency_key: str) -> str:
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=to_minor_units(amount),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as err:
            raise self._translate(err, "create refund") from err
        logger.info(f"Created refund {refund.id} for payment intent {payment_intent_id}")
        return refund.id

    def refund_checkout_payment(self, session_id: str, amount: Decimal, idempotency_key: str) -> str:
        payment_intent_id = self.retrieve_payment_intent(session_id)
        return self.create_refund(payment_intent_id, amount, idempotency_key)

    @staticmethod
    def _translate(err: stripe.StripeError, action: str) -> PaymentGatewayError:
        error_type = type(err).__name__
        error_code = getattr(err, "code", None)
        message = getattr(err, "user_message", None) or str(err)

        if isinstance(err, stripe.InvalidRequestError) and error_code == ALREADY_REFUNDED_CODE:
            logger.warning(f"Stripe refused to {action}: charge already refunded")
            return RefundAlreadyProcessed(
                "This payment has already been refunded",
                error_type=error_type,
                error_code=error_code,
            )
        if isinstance(err, (stripe.APIConnectionError, stripe.RateLimitError)):
            logger.warning(f"Transient Stripe failure trying to {action}: {err}")
            return PaymentGatewayError(
                "Payment provider is temporarily unavailable, please try again",
                retryable=True,
                error_type=error_type,
                error_code=error_code,
            )
        logger.error(f"Stripe failed to {action}: {err}")
        return PaymentGatewayError(
            f"Payment provider error: {message}",
            retryable=False,
            error_type=error_type,
            error_code=error_code,
        )
