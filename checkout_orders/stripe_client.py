import logging
from decimal import Decimal
from typing import Optional

import stripe

from .config import Config
from .errors import MissingIdentifierError, PaymentNotCompletedError, UpstreamUnavailableError
from .logs import log_step
from .models import VerifiedPayment

logger = logging.getLogger(__name__)


def _metadata_dict(metadata) -> dict:
    if not metadata:
        return {}
    return {str(key): "" if value is None else str(value) for key, value in dict(metadata).items()}


def _minor_to_units(amount: Optional[int]) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(Decimal("0.01"))


class StripeClient:
    """Client for verifying completed payments with Stripe."""

    def __init__(self, config: Config):
        self.config = config
        stripe.api_key = config.STRIPE_SECRET_KEY

    def verify_payment(
        self,
        payment_intent_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> VerifiedPayment:
        """
        Confirm a payment completed and return its metadata and paid amount.

        Args:
            payment_intent_id: A PaymentIntent ID (checked first when both are given)
            session_id: A Checkout Session ID

        Returns:
            VerifiedPayment with the paid amount in currency units
        """
        if payment_intent_id:
            return self._verify_payment_intent(payment_intent_id)
        if session_id:
            return self._verify_checkout_session(session_id)

        log_step(logger, "ERROR: Missing payment identifier", level=logging.ERROR)
        raise MissingIdentifierError()

    def _verify_payment_intent(self, payment_intent_id: str) -> VerifiedPayment:
        log_step(logger, "Retrieving PaymentIntent", payment_intent_id=payment_intent_id)
        try:
            payment_intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            log_step(logger, "ERROR: Stripe API call failed", level=logging.ERROR, error=str(e))
            raise UpstreamUnavailableError(str(e)) from e

        if payment_intent.status != "succeeded":
            log_step(
                logger,
                "ERROR: Payment not completed",
                level=logging.ERROR,
                status=payment_intent.status,
            )
            raise PaymentNotCompletedError(payment_intent.status)

        payment = VerifiedPayment(
            payment_reference=payment_intent_id,
            payment_intent_id=payment_intent_id,
            paid_amount=_minor_to_units(payment_intent.amount),
            metadata=_metadata_dict(payment_intent.metadata),
        )
        log_step(
            logger,
            "PaymentIntent retrieved successfully",
            status=payment_intent.status,
            amount=payment.paid_amount,
            metadata_keys=sorted(payment.metadata),
        )
        return payment

    def _verify_checkout_session(self, session_id: str) -> VerifiedPayment:
        log_step(logger, "Retrieving Checkout Session", session_id=session_id)
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            log_step(logger, "ERROR: Stripe API call failed", level=logging.ERROR, error=str(e))
            raise UpstreamUnavailableError(str(e)) from e

        if session.payment_status != "paid":
            log_step(
                logger,
                "ERROR: Payment not completed",
                level=logging.ERROR,
                status=session.payment_status,
            )
            raise PaymentNotCompletedError(session.payment_status)

        linked_intent = getattr(session, "payment_intent", None)
        payment = VerifiedPayment(
            payment_reference=session_id,
            payment_intent_id=linked_intent if isinstance(linked_intent, str) else None,
            paid_amount=_minor_to_units(session.amount_total),
            metadata=_metadata_dict(session.metadata),
        )
        log_step(
            logger,
            "Checkout Session retrieved successfully",
            status=session.payment_status,
            amount=payment.paid_amount,
            metadata_keys=sorted(payment.metadata),
        )
        return payment

    def test_connection(self) -> bool:
        """Test the Stripe API connection."""
        try:
            stripe.Balance.retrieve()
            return True
        except stripe.StripeError:
            return False
