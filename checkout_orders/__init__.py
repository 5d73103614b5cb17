"""
Checkout Orders - creates Shopify orders from completed Stripe payments.

The flow for one payment:
- verify the payment with Stripe
- recover the cart and price breakdown (order draft first, then metadata)
- stop if an order already exists for this payment
- check the paid amount against the order total
- normalize the delivery address
- find or create the Shopify customer
- build and submit the Shopify order, then record it locally
"""

from .errors import (
    AmountMismatchError,
    ConfigurationError,
    EmptyCartError,
    ExternalOrderCreateFailedError,
    MissingIdentifierError,
    OrderCreationError,
    PaymentNotCompletedError,
    UpstreamUnavailableError,
)
from .order_processor import OrderProcessor

__version__ = "1.0.0"

__all__ = [
    "OrderProcessor",
    "OrderCreationError",
    "ConfigurationError",
    "MissingIdentifierError",
    "PaymentNotCompletedError",
    "UpstreamUnavailableError",
    "EmptyCartError",
    "AmountMismatchError",
    "ExternalOrderCreateFailedError",
]
