"""
Errors raised while turning a completed payment into a Shopify order.

Every subclass of OrderCreationError aborts the request. ShopifyAPIError is
raised by the Shopify client and is only fatal where the caller makes it so.
"""
from decimal import Decimal
from typing import Optional


class OrderCreationError(Exception):
    """Base class for fatal order creation errors."""


class ConfigurationError(OrderCreationError):
    def __init__(self, missing: list) -> None:
        super().__init__("Missing required configuration: " + ", ".join(missing))
        self.missing = missing


class MissingIdentifierError(OrderCreationError):
    def __init__(self) -> None:
        super().__init__("Payment Intent ID or Session ID is required")


class PaymentNotCompletedError(OrderCreationError):
    def __init__(self, status: Optional[str]) -> None:
        super().__init__(f"Payment not completed. Status: {status}")
        self.status = status


class UpstreamUnavailableError(OrderCreationError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Stripe API error: {message}")


class EmptyCartError(OrderCreationError):
    def __init__(self) -> None:
        super().__init__("No cart items found in order")


class AmountMismatchError(OrderCreationError):
    def __init__(self, paid_amount: Decimal, expected_amount: Decimal) -> None:
        super().__init__(
            f"Payment amount mismatch: Payment ${paid_amount} vs Order ${expected_amount}"
        )
        self.paid_amount = paid_amount
        self.expected_amount = expected_amount


class ExternalOrderCreateFailedError(OrderCreationError):
    """
    Shopify did not confirm the order.

    outcome_unknown is set when the request may have reached Shopify (transport
    error, 5xx, unreadable 2xx), so the order might exist after all.
    """

    def __init__(self, status_code: Optional[int], body: str, outcome_unknown: bool = False) -> None:
        super().__init__(f"Shopify order creation failed: {status_code} - {body}")
        self.status_code = status_code
        self.body = body
        self.outcome_unknown = outcome_unknown


class ShopifyAPIError(Exception):
    """Non-2xx response from the Shopify Admin API."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Shopify API error: {status_code} - {body}")
        self.status_code = status_code
        self.body = body


class DuplicateOrderError(Exception):
    """A local order row already exists for this payment reference."""

    def __init__(self, payment_reference: str) -> None:
        super().__init__(f"Order already recorded for payment {payment_reference}")
        self.payment_reference = payment_reference
