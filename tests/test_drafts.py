import json
from decimal import Decimal

import pytest
from checkout_orders.checkout_metadata import read_checkout_details
from checkout_orders.drafts import resolve_order
from checkout_orders.errors import EmptyCartError
from checkout_orders.models import CartItem
from checkout_orders.order_payload import build_line_items
from conftest import CART
from sqlalchemy.exc import OperationalError


def _draft_data(**overrides):
    data = {
        "cart_items": CART,
        "subtotal": 79.97,
        "delivery_fee": 15.0,
        "sales_tax": 0,
        "tip_amount": 0,
    }
    data.update(overrides)
    return data


def test_draft_is_authoritative(store, add_draft) -> None:
    add_draft("draft-1", _draft_data(), 94.97)
    details = read_checkout_details(
        {"order_draft_id": "draft-1", "cart_items": json.dumps([{"title": "stale", "price": 1}]), "total_amount": "1.00"}
    )

    resolved = resolve_order(details, store)

    assert resolved.source == "draft"
    assert [item.title for item in resolved.cart_items] == ["Lone Star 12pk", "Party Ice 20lb"]
    assert resolved.amounts.total_amount == Decimal("94.97")
    assert resolved.amounts.delivery_fee == Decimal("15.00")


def test_draft_tip_is_rounded(store, add_draft) -> None:
    add_draft("draft-2", _draft_data(tip_amount=5.123), 100.09)

    resolved = resolve_order(read_checkout_details({"order_draft_id": "draft-2"}), store)

    assert resolved.amounts.tip_amount == Decimal("5.12")


def test_draft_without_total_uses_metadata_amounts(store, add_draft) -> None:
    add_draft("draft-3", _draft_data(), None)
    details = read_checkout_details(
        {"order_draft_id": "draft-3", "subtotal": "79.97", "delivery_fee": "15", "total_amount": "94.97"}
    )

    resolved = resolve_order(details, store)

    assert resolved.source == "draft"
    assert resolved.amounts.total_amount == Decimal("94.97")
    assert resolved.amounts.subtotal == Decimal("79.97")


def test_missing_draft_falls_back_to_metadata_cart(store) -> None:
    details = read_checkout_details(
        {
            "order_draft_id": "does-not-exist",
            "cart_items": json.dumps(CART),
            "subtotal": "79.97",
            "delivery_fee": "15.00",
            "tip_amount": "2.505",
            "total_amount": "97.48",
        }
    )

    resolved = resolve_order(details, store)

    assert resolved.source == "metadata"
    assert len(resolved.cart_items) == 2
    assert resolved.amounts.tip_amount == Decimal("2.51")
    assert resolved.amounts.sales_tax == Decimal("0.00")


def test_metadata_amounts_default_to_zero(store) -> None:
    details = read_checkout_details({"cart_items": json.dumps(CART), "total_amount": "oops"})

    resolved = resolve_order(details, store)

    assert resolved.amounts.total_amount == Decimal("0.00")
    assert resolved.amounts.delivery_fee == Decimal("0.00")


def test_empty_draft_and_no_metadata_cart_is_fatal(store, add_draft) -> None:
    add_draft("draft-empty", _draft_data(cart_items=[]), 94.97)

    with pytest.raises(EmptyCartError):
        resolve_order(read_checkout_details({"order_draft_id": "draft-empty", "cart_items": "not json"}), store)


def test_metadata_cart_that_is_not_a_list_is_fatal(store) -> None:
    with pytest.raises(EmptyCartError):
        resolve_order(read_checkout_details({"cart_items": '{"title": "x"}'}), store)


def test_draft_lookup_failure_is_not_fatal(store, monkeypatch) -> None:
    def broken(draft_id):
        raise OperationalError("SELECT", {}, Exception("db down"))

    monkeypatch.setattr(store, "get_draft", broken)
    details = read_checkout_details({"order_draft_id": "draft-1", "cart_items": json.dumps(CART)})

    resolved = resolve_order(details, store)

    assert resolved.source == "metadata"


def test_loosely_typed_items_are_kept(store) -> None:
    cart = CART + [
        {"id": "x", "title": None, "name": "Ice", "price": 0, "quantity": 1},
        {"id": 1.5, "title": "Cups", "price": "3.50", "quantity": "2", "variant": 12345},
        "not an item",
    ]

    resolved = resolve_order(read_checkout_details({"cart_items": json.dumps(cart)}), store)

    assert [item.title for item in resolved.cart_items] == ["Lone Star 12pk", "Party Ice 20lb", "Ice", "Cups"]
    cups = resolved.cart_items[3]
    assert cups.quantity == 2
    assert cups.variant == 12345
    assert build_line_items([cups])[0].keys().isdisjoint({"variant_id", "product_id"})


@pytest.mark.parametrize(("raw", "expected"), [(-3, 1), (0, 1), ("abc", 1), (None, 1), (4, 4)])
def test_quantity_is_at_least_one(raw, expected) -> None:
    assert CartItem.model_validate({"title": "Ice", "quantity": raw}).quantity == expected


def test_name_and_variant_id_fallbacks() -> None:
    item = CartItem.model_validate({"name": "Ice", "variant_id": "gid://shopify/ProductVariant/9"})

    assert item.title == "Ice"
    assert build_line_items([item])[0]["variant_id"] == 9
