"""
Map a reconciled checkout onto Shopify's order schema.

Products go in line_items. The delivery fee and the driver tip go in
shipping_lines so Shopify accounts for them the same way; the tip is never a
product. Sales tax goes in tax_lines. The payment already happened in Stripe,
so the order carries a successful sale transaction and financial_status
"paid", which stops Shopify from charging again.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .customers import split_name
from .logs import log_step
from .models import CartItem, CheckoutDetails, DeliveryAddress, OrderAmounts, format_money

logger = logging.getLogger(__name__)

PRODUCT_GID = "gid://shopify/Product/"
VARIANT_GID = "gid://shopify/ProductVariant/"

DELIVERY_LINE = "Delivery Service"
TIP_LINE = "Driver Tip"
TAX_LINE = "Sales Tax"


@dataclass
class OrderContext:
    cart_items: List[CartItem]
    amounts: OrderAmounts
    address: DeliveryAddress
    details: CheckoutDetails
    payment_reference: str
    customer_id: Optional[int] = None
    currency: str = "USD"


def _gid_number(value: Any, prefix: str) -> Optional[int]:
    if not isinstance(value, str) or prefix not in value:
        return None
    number = value.split(prefix, 1)[1].split("?", 1)[0]
    return int(number) if number.isdigit() else None


def product_subtotal(cart_items: List[CartItem]) -> Decimal:
    return sum((item.line_total for item in cart_items), Decimal("0.00"))


def build_line_items(cart_items: List[CartItem]) -> List[Dict[str, Any]]:
    line_items = []
    for item in cart_items:
        line_item: Dict[str, Any] = {
            "title": item.title,
            "price": format_money(item.price),
            "quantity": item.quantity,
            "requires_shipping": True,
            "taxable": True,
            "fulfillment_service": "manual",
        }

        variant_id = _gid_number(item.variant, VARIANT_GID)
        product_id = _gid_number(item.id, PRODUCT_GID)
        if variant_id is not None:
            line_item["variant_id"] = variant_id
        elif product_id is not None:
            line_item["product_id"] = product_id

        line_items.append(line_item)
    return line_items


def build_shipping_lines(amounts: OrderAmounts) -> List[Dict[str, Any]]:
    shipping_lines = []
    if amounts.delivery_fee > 0:
        shipping_lines.append({
            "title": DELIVERY_LINE,
            "price": format_money(amounts.delivery_fee),
            "code": "DELIVERY",
            "source": "delivery_app",
        })
    if amounts.tip_amount > 0:
        shipping_lines.append({
            "title": TIP_LINE,
            "price": format_money(amounts.tip_amount),
            "code": "DRIVER_TIP",
            "source": "delivery_app",
        })
    return shipping_lines


def build_tax_lines(amounts: OrderAmounts, subtotal: Decimal, currency: str) -> List[Dict[str, Any]]:
    if amounts.sales_tax <= 0:
        return []
    rate = amounts.sales_tax / (subtotal or Decimal("1"))
    return [{
        "title": TAX_LINE,
        "price": format_money(amounts.sales_tax),
        "rate": float(round(rate, 4)),
        "price_set": {
            "shop_money": {
                "amount": format_money(amounts.sales_tax),
                "currency_code": currency,
            }
        },
    }]


def build_note_attributes(ctx: OrderContext) -> List[Dict[str, str]]:
    details = ctx.details
    attributes = [
        {"name": "Delivery Date", "value": details.delivery_date},
        {"name": "Delivery Time", "value": details.delivery_time},
        {"name": "Full Delivery Address", "value": ctx.address.display()},
        {"name": "Special Instructions", "value": details.delivery_instructions or "None"},
        {"name": "Driver Tip Amount", "value": f"${format_money(ctx.amounts.tip_amount)}"},
        {"name": "Stripe Payment ID", "value": ctx.payment_reference},
    ]
    return [
        attr for attr in attributes
        if attr["value"] and attr["value"].strip() and attr["value"] != "None"
    ]


def build_tags(ctx: OrderContext) -> str:
    tip = ctx.amounts.tip_amount
    tags = [
        "delivery-order",
        "stripe-paid",
        f"affiliate-{ctx.details.affiliate_code}" if ctx.details.affiliate_code else None,
        "has-tip" if tip > 0 else "no-tip",
        f"tip-{format_money(tip).replace('.', '_')}",
        f"delivery-{ctx.details.delivery_date}" if ctx.details.delivery_date else None,
    ]
    return ", ".join(tag for tag in tags if tag)


def build_note(ctx: OrderContext, subtotal: Decimal) -> str:
    details = ctx.details
    address = ctx.address
    amounts = ctx.amounts
    instructions = details.delivery_instructions or "None"

    lines = [
        f"DELIVERY ORDER (CST) - {details.delivery_date} at {details.delivery_time}",
        "",
        "DELIVERY ADDRESS:",
        address.street,
        f"{address.city}, {address.state} {address.zip}",
        f"Customer: {details.customer_phone}",
        f"SPECIAL INSTRUCTIONS: {instructions}",
        "",
        "PAYMENT BREAKDOWN:",
        f"• Product Subtotal: ${format_money(subtotal)}",
        f"• Delivery Fee: ${format_money(amounts.delivery_fee)}",
        f"• Sales Tax: ${format_money(amounts.sales_tax)}",
        f"• Driver Tip: ${format_money(amounts.tip_amount)}",
        f"• TOTAL PAID: ${format_money(amounts.total_amount)}",
        "",
        f"STRIPE CONFIRMATION: {ctx.payment_reference}",
    ]
    if details.affiliate_code:
        lines.append(f"AFFILIATE: {details.affiliate_code}")
    return "\n".join(lines)


def _address(ctx: OrderContext, first_name: str, last_name: str) -> Dict[str, Any]:
    return {
        "first_name": first_name,
        "last_name": last_name,
        "address1": ctx.address.street,
        "city": ctx.address.city,
        "province": ctx.address.state,
        "country": "US",
        "zip": ctx.address.zip,
        "phone": ctx.details.customer_phone,
    }


def build_order_payload(ctx: OrderContext) -> Dict[str, Any]:
    """Build the body for POST /orders.json."""
    details = ctx.details
    amounts = ctx.amounts.rounded()
    first_name, last_name = split_name(details.customer_name)

    subtotal = product_subtotal(ctx.cart_items)
    shipping_total = amounts.delivery_fee + amounts.tip_amount
    total_price = subtotal + shipping_total + amounts.sales_tax

    if abs(total_price - amounts.total_amount) > Decimal("0.02"):
        log_step(
            logger,
            "WARNING: Line totals differ from reconciled total",
            level=logging.WARNING,
            product_subtotal=subtotal,
            shipping_total=shipping_total,
            sales_tax=amounts.sales_tax,
            line_total=total_price,
            reconciled_total=amounts.total_amount,
        )

    shipping_address = _address(ctx, first_name, last_name)
    shipping_address["company"] = f"DELIVERY: {details.delivery_date} at {details.delivery_time}"
    if details.delivery_instructions:
        shipping_address["address2"] = f"Instructions: {details.delivery_instructions}"

    order: Dict[str, Any] = {
        "line_items": build_line_items(ctx.cart_items),
        "shipping_lines": build_shipping_lines(amounts),
        "tax_lines": build_tax_lines(amounts, subtotal, ctx.currency),
        "billing_address": _address(ctx, first_name, last_name),
        "shipping_address": shipping_address,
        "email": details.customer_email,
        "phone": details.customer_phone,
        "currency": ctx.currency,
        "subtotal_price": format_money(subtotal),
        "total_shipping_price_set": {
            "shop_money": {
                "amount": format_money(shipping_total),
                "currency_code": ctx.currency,
            }
        },
        "total_tax": format_money(amounts.sales_tax),
        "total_price": format_money(total_price),
        "note_attributes": build_note_attributes(ctx),
        "note": build_note(ctx, subtotal),
        "financial_status": "paid",
        "tags": build_tags(ctx),
        "transactions": [{
            "amount": format_money(amounts.total_amount),
            "kind": "sale",
            "gateway": "stripe",
            "status": "success",
            "source_name": "web",
        }],
    }
    if ctx.customer_id:
        order["customer"] = {"id": ctx.customer_id}

    log_step(
        logger,
        "Shopify order payload prepared",
        line_item_count=len(order["line_items"]),
        shipping_line_count=len(order["shipping_lines"]),
        tax_line_count=len(order["tax_lines"]),
        product_subtotal=subtotal,
        delivery_fee=amounts.delivery_fee,
        tip_amount=amounts.tip_amount,
        sales_tax=amounts.sales_tax,
    )
    return {"order": order}
