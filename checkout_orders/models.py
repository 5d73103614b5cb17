from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

CENTS = Decimal("0.01")


def parse_amount(value: Any) -> Decimal:
    """Parse a loosely-typed amount into an exact Decimal, 0 when unusable."""
    if value is None or isinstance(value, bool):
        return Decimal("0.00")
    try:
        amount = Decimal(str(value).strip() or "0")
    except (InvalidOperation, ValueError):
        return Decimal("0.00")
    if not amount.is_finite():
        return Decimal("0.00")
    return amount


def to_money(value: Any) -> Decimal:
    """Parse a loosely-typed amount into a 2-place Decimal, 0 when unusable."""
    return parse_amount(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return f"{value.quantize(CENTS, rounding=ROUND_HALF_UP):.2f}"


class CreateOrderRequest(BaseModel):
    """Body of POST /create-shopify-order."""
    model_config = ConfigDict(populate_by_name=True)

    payment_intent_id: Optional[str] = Field(default=None, alias="paymentIntentId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class VerifiedPayment(BaseModel):
    """A payment Stripe reports as completed."""
    payment_reference: str
    payment_intent_id: Optional[str] = None
    paid_amount: Decimal
    metadata: Dict[str, str] = {}


class CartItem(BaseModel):
    """One product in the customer's cart."""
    model_config = ConfigDict(extra="ignore")

    # Only GID strings are used downstream; anything else is carried as-is.
    id: Any = None
    title: str = ""
    price: Decimal = Decimal("0")
    quantity: int = 1
    variant: Any = None

    @model_validator(mode="before")
    @classmethod
    def _fill_fallbacks(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        title = data.get("title") or data.get("name")
        data["title"] = "" if title is None else str(title)
        if data.get("variant") is None:
            data["variant"] = data.get("variant_id")
        return data

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> Decimal:
        return to_money(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> int:
        try:
            quantity = int(value)
        except (TypeError, ValueError):
            return 1
        return max(quantity, 1)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class OrderAmounts(BaseModel):
    """
    Price breakdown, in currency units.

    Amounts keep the precision they arrived with so the tolerance check sees
    the real total; only the tip is rounded to cents on the way in. Use
    rounded() before sending amounts anywhere.
    """
    subtotal: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")
    sales_tax: Decimal = Decimal("0.00")
    tip_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")

    @field_validator("*", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any, info: ValidationInfo) -> Decimal:
        if info.field_name == "tip_amount":
            return to_money(value)
        return parse_amount(value)

    def rounded(self) -> "OrderAmounts":
        return self.model_copy(update={name: to_money(value) for name, value in self})


class DeliveryAddress(BaseModel):
    """Normalized delivery address; never blank, sentinels mark missing data."""
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    full_address: str = ""

    def display(self) -> str:
        if self.full_address:
            return self.full_address
        state_zip = " ".join(part for part in (self.state, self.zip) if part)
        return ", ".join(part for part in (self.street, self.city, state_zip) if part)

    def as_record(self, instructions: str = "") -> Dict[str, str]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "full_address": self.full_address,
            "instructions": instructions,
        }


class CheckoutDetails(BaseModel):
    """Customer, delivery and pricing data attached to a payment."""
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    delivery_date: str = ""
    delivery_time: str = ""
    delivery_instructions: str = ""
    affiliate_code: str = ""
    order_draft_id: Optional[str] = None
    cart_items: Optional[List[Dict[str, Any]]] = None
    amounts: Optional[OrderAmounts] = None
    address_source: Optional[Union[str, Dict[str, Any]]] = None


class LocalOrderRecord(BaseModel):
    """Row written to customer_orders once a Shopify order exists."""
    order_number: str
    shopify_order_id: str
    payment_reference: str
    payment_intent_id: Optional[str] = None
    amounts: OrderAmounts
    delivery_date: Optional[str] = None
    delivery_time: Optional[str] = None
    delivery_address: Dict[str, Any] = {}
    line_items: List[Dict[str, Any]] = []
    special_instructions: str = ""
    affiliate_code: Optional[str] = None
    status: str = "confirmed"


class ExistingOrder(BaseModel):
    payment_reference: str
    order_number: Optional[str] = None
    shopify_order_id: Optional[str] = None
    status: str


class CreateOrderResponse(BaseModel):
    success: bool = True
    shopify_order_id: Optional[str] = None
    order_number: Optional[str] = None
    total_amount: float
    subtotal: Optional[float] = None
    delivery_fee: Optional[float] = None
    sales_tax: Optional[float] = None
    tip_amount: Optional[float] = None
    shipping_address: Optional[Dict[str, Any]] = None
    message: str
    duplicate_prevented: Optional[bool] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class OrderSyncState(BaseModel):
    """State for tracking what the backfill job has seen."""
    last_sync_at: Optional[datetime] = None
    last_shopify_order_id: Optional[str] = None
    total_orders_backfilled: int = 0
