"""
Read customer, delivery and pricing details out of Stripe payment metadata.

Checkout writes a single JSON document under ``checkout_payload`` with an
explicit ``version``. Payments created before that carry the same data as
loose string keys, which are still read when no usable payload is present.
"""
import json
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .address import select_address_source
from .logs import log_step
from .models import CheckoutDetails, OrderAmounts

logger = logging.getLogger(__name__)

PAYLOAD_KEY = "checkout_payload"

AMOUNT_KEYS = ("subtotal", "delivery_fee", "sales_tax", "tip_amount", "total_amount")


class CheckoutCustomer(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class CheckoutDelivery(BaseModel):
    date: str = ""
    time: str = ""
    instructions: str = ""
    address: Optional[Union[str, Dict[str, Any]]] = None


class CheckoutPayloadV1(BaseModel):
    """Version 1 of the structured checkout payload."""
    model_config = ConfigDict(extra="ignore")

    version: Literal[1]
    customer: CheckoutCustomer = Field(default_factory=CheckoutCustomer)
    delivery: CheckoutDelivery = Field(default_factory=CheckoutDelivery)
    affiliate_code: str = ""
    order_draft_id: Optional[str] = None
    cart_items: Optional[List[Dict[str, Any]]] = None
    amounts: Optional[OrderAmounts] = None

    def to_details(self) -> CheckoutDetails:
        address = self.delivery.address
        if isinstance(address, str) and not address.strip():
            address = None
        return CheckoutDetails(
            customer_name=self.customer.name,
            customer_email=self.customer.email,
            customer_phone=self.customer.phone,
            delivery_date=self.delivery.date,
            delivery_time=self.delivery.time,
            delivery_instructions=self.delivery.instructions,
            affiliate_code=self.affiliate_code,
            order_draft_id=self.order_draft_id,
            cart_items=self.cart_items,
            amounts=self.amounts,
            address_source=address,
        )


def _parse_payload(raw: str) -> Optional[CheckoutDetails]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        log_step(logger, "WARNING: checkout_payload is not valid JSON", level=logging.WARNING, error=str(e))
        return None

    try:
        return CheckoutPayloadV1.model_validate(data).to_details()
    except ValidationError as e:
        log_step(
            logger,
            "WARNING: Unsupported checkout_payload, reading legacy keys",
            level=logging.WARNING,
            version=data.get("version") if isinstance(data, dict) else None,
            errors=e.error_count(),
        )
        return None


def _parse_cart_items(raw: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    if not raw:
        return None
    try:
        items = json.loads(raw)
    except (TypeError, ValueError) as e:
        log_step(
            logger,
            "ERROR: Failed to parse cart_items from metadata",
            level=logging.ERROR,
            error=str(e),
        )
        return None
    if not isinstance(items, list):
        log_step(logger, "ERROR: cart_items in metadata is not a list", level=logging.ERROR)
        return None
    return [item for item in items if isinstance(item, dict)]


def _read_legacy(metadata: Dict[str, str]) -> CheckoutDetails:
    has_amounts = any(metadata.get(key) for key in AMOUNT_KEYS)
    return CheckoutDetails(
        customer_name=metadata.get("customer_name", ""),
        customer_email=metadata.get("customer_email", ""),
        customer_phone=metadata.get("customer_phone", ""),
        delivery_date=metadata.get("delivery_date", ""),
        delivery_time=metadata.get("delivery_time", ""),
        delivery_instructions=metadata.get("delivery_instructions", ""),
        affiliate_code=metadata.get("affiliate_code", ""),
        order_draft_id=metadata.get("order_draft_id") or None,
        cart_items=_parse_cart_items(metadata.get("cart_items")),
        amounts=OrderAmounts(**{key: metadata.get(key) for key in AMOUNT_KEYS}) if has_amounts else None,
        address_source=select_address_source(metadata),
    )


def read_checkout_details(metadata: Dict[str, str]) -> CheckoutDetails:
    raw_payload = metadata.get(PAYLOAD_KEY)
    if raw_payload:
        details = _parse_payload(raw_payload)
        if details is not None:
            log_step(logger, "Checkout details read from structured payload", version=1)
            return details

    return _read_legacy(metadata)
