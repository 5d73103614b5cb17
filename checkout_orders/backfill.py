"""
Order backfill.

Creating the Shopify order and writing the local customer_orders row are two
separate writes; if the second fails the order exists only in Shopify. This
job lists recent Shopify orders and writes the missing local rows, keyed on
the Stripe payment reference stored in each order's note attributes.
"""
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .errors import DuplicateOrderError
from .models import LocalOrderRecord, OrderAmounts, OrderSyncState, to_money
from .order_payload import TIP_LINE
from .order_store import CONFIRMED, PENDING, OrderStore
from .shopify_client import ShopifyClient

logger = logging.getLogger(__name__)

PAYMENT_ATTRIBUTE = "Stripe Payment ID"


def load_sync_state(state_file: Path) -> OrderSyncState:
    """Load sync state from disk."""
    if state_file.exists():
        try:
            return OrderSyncState.model_validate_json(state_file.read_text())
        except (OSError, ValidationError) as e:
            logger.warning("Error loading sync state from %s: %s", state_file, e)
    return OrderSyncState()


def save_sync_state(state_file: Path, state: OrderSyncState) -> None:
    """Save sync state to disk."""
    state_file.parent.mkdir(parents=True, exist_ok=True)
    state_file.write_text(state.model_dump_json(indent=2))


def _attributes(order: Dict[str, Any]) -> Dict[str, str]:
    return {
        str(attr.get("name")): str(attr.get("value") or "")
        for attr in order.get("note_attributes") or []
    }


def payment_reference_of(order: Dict[str, Any]) -> Optional[str]:
    return _attributes(order).get(PAYMENT_ATTRIBUTE) or None


def record_from_order(order: Dict[str, Any], payment_reference: str) -> LocalOrderRecord:
    """Rebuild a local order row from a Shopify order."""
    attributes = _attributes(order)
    shipping_lines = order.get("shipping_lines") or []
    tip = sum((to_money(line.get("price")) for line in shipping_lines if line.get("title") == TIP_LINE), to_money(0))
    delivery = sum((to_money(line.get("price")) for line in shipping_lines if line.get("title") != TIP_LINE), to_money(0))
    shipping_address = order.get("shipping_address") or {}

    return LocalOrderRecord(
        order_number=str(order.get("order_number", "")),
        shopify_order_id=str(order["id"]),
        payment_reference=payment_reference,
        payment_intent_id=payment_reference if payment_reference.startswith("pi_") else None,
        amounts=OrderAmounts(
            subtotal=order.get("subtotal_price"),
            delivery_fee=delivery,
            sales_tax=order.get("total_tax"),
            tip_amount=tip,
            total_amount=order.get("total_price"),
        ),
        delivery_date=attributes.get("Delivery Date"),
        delivery_time=attributes.get("Delivery Time"),
        delivery_address={
            "street": shipping_address.get("address1") or "",
            "city": shipping_address.get("city") or "",
            "state": shipping_address.get("province") or "",
            "zip": shipping_address.get("zip") or "",
            "full_address": attributes.get("Full Delivery Address", ""),
            "instructions": attributes.get("Special Instructions", ""),
        },
        line_items=[
            {
                "id": str(item.get("product_id") or item.get("id") or ""),
                "variant": str(item["variant_id"]) if item.get("variant_id") else None,
                "title": item.get("title", ""),
                "price": str(item.get("price", "0")),
                "quantity": item.get("quantity", 1),
            }
            for item in order.get("line_items") or []
        ],
        special_instructions=attributes.get("Special Instructions", ""),
        status=CONFIRMED,
    )


class OrderBackfill:
    """Writes local rows for Shopify orders the inline write missed."""

    def __init__(self, config: Config, shopify: ShopifyClient, store: OrderStore):
        self.config = config
        self.shopify = shopify
        self.store = store
        self.state_file = Path(config.STATE_DIR) / "sync_state.json"

    def _needs_backfill(self, payment_reference: str, shopify_order_id: str) -> bool:
        existing = self.store.find_order(payment_reference)
        if existing is not None:
            return existing.status == PENDING
        return self.store.find_by_shopify_order_id(shopify_order_id) is None

    def run(self, now: Optional[datetime] = None) -> dict:
        """
        Backfill orders created since the last checkpoint.

        Returns backfill result summary.
        """
        now = now or datetime.now(timezone.utc)
        state = load_sync_state(self.state_file)

        created_after = state.last_sync_at
        if not created_after:
            created_after = now - timedelta(days=self.config.backfill_lookback_days)

        logger.info("Backfilling Shopify orders created after %s", created_after.isoformat())
        orders = self.shopify.list_orders(created_at_min=created_after.isoformat())

        backfilled: List[str] = []
        for order in orders:
            payment_reference = payment_reference_of(order)
            if not payment_reference or "id" not in order:
                continue

            try:
                if not self._needs_backfill(payment_reference, str(order["id"])):
                    continue
                self.store.record_order(record_from_order(order, payment_reference))
            except (SQLAlchemyError, DuplicateOrderError) as e:
                logger.warning("Could not backfill order %s: %s", order.get("id"), e)
                continue

            backfilled.append(payment_reference)
            logger.info("Backfilled order %s for payment %s", order.get("order_number"), payment_reference)

        state.last_sync_at = now
        if orders:
            state.last_shopify_order_id = str(orders[0].get("id"))
        state.total_orders_backfilled += len(backfilled)
        save_sync_state(self.state_file, state)

        return {
            "synced_at": now.isoformat(),
            "orders_fetched": len(orders),
            "records_backfilled": len(backfilled),
            "backfilled_references": backfilled,
            "total_backfilled": state.total_orders_backfilled,
        }
