import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .errors import EmptyCartError
from .logs import log_step
from .models import CartItem, CheckoutDetails, OrderAmounts
from .order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class ResolvedOrder:
    """Authoritative cart and price breakdown for a payment."""
    cart_items: List[CartItem]
    amounts: OrderAmounts
    source: str  # "draft" or "metadata"


def _cart_items(raw_items: Optional[List[Dict[str, Any]]]) -> List[CartItem]:
    if not raw_items:
        return []
    cart_items = []
    for index, raw_item in enumerate(raw_items):
        try:
            cart_items.append(CartItem.model_validate(raw_item))
        except ValidationError as e:
            log_step(
                logger,
                "WARNING: Skipping cart item that failed validation",
                level=logging.WARNING,
                index=index,
                error=str(e),
            )
    return cart_items


def _load_draft(store: OrderStore, draft_id: str) -> Optional[Dict[str, Any]]:
    log_step(logger, "Loading order data from database", order_draft_id=draft_id)
    try:
        return store.get_draft(draft_id)
    except SQLAlchemyError as e:
        log_step(
            logger,
            "WARNING: Failed to load from order_drafts",
            level=logging.WARNING,
            error=str(e),
        )
        return None


def resolve_order(details: CheckoutDetails, store: OrderStore) -> ResolvedOrder:
    """
    Recover cart items and amounts, preferring the persisted draft.

    Raises:
        EmptyCartError: neither the draft nor the metadata holds any cart items
    """
    cart_items: List[CartItem] = []
    amounts: Optional[OrderAmounts] = None
    source = "metadata"

    if details.order_draft_id:
        draft = _load_draft(store, details.order_draft_id)
        draft_data = (draft or {}).get("draft_data") or {}
        cart_items = _cart_items(draft_data.get("cart_items"))
        if cart_items:
            source = "draft"
            amounts = OrderAmounts(
                subtotal=draft_data.get("subtotal"),
                delivery_fee=draft_data.get("delivery_fee"),
                sales_tax=draft_data.get("sales_tax"),
                tip_amount=draft_data.get("tip_amount"),
                total_amount=draft.get("total_amount"),
            )
            log_step(
                logger,
                "Order data loaded from database",
                item_count=len(cart_items),
                total_amount=amounts.total_amount,
                delivery_fee=amounts.delivery_fee,
                tip_amount=amounts.tip_amount,
            )

    if not cart_items:
        cart_items = _cart_items(details.cart_items)
        if cart_items:
            log_step(logger, "Cart items parsed from metadata", item_count=len(cart_items))

    if not cart_items:
        log_step(
            logger,
            "CRITICAL ERROR: No cart items found",
            level=logging.ERROR,
            has_order_draft_id=bool(details.order_draft_id),
        )
        raise EmptyCartError()

    # A draft without a stored total defers to the amounts on the payment.
    if amounts is None or not amounts.total_amount:
        amounts = details.amounts or OrderAmounts()
        log_step(logger, "Using amounts from metadata", **amounts.model_dump())

    return ResolvedOrder(cart_items=cart_items, amounts=amounts, source=source)
