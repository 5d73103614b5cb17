from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest
from checkout_orders.config import Config
from checkout_orders.database import init_db, session_factory
from checkout_orders.db_models import OrderDraft
from checkout_orders.errors import ShopifyAPIError
from checkout_orders.models import VerifiedPayment
from checkout_orders.order_processor import OrderProcessor
from checkout_orders.order_store import OrderStore

CART = [
    {
        "id": "gid://shopify/Product/111",
        "title": "Lone Star 12pk",
        "price": 19.99,
        "quantity": 2,
        "variant": "gid://shopify/ProductVariant/222",
    },
    {"id": "gid://shopify/Product/333", "title": "Party Ice 20lb", "price": 39.99, "quantity": 1},
]


class FakePayments:
    def __init__(self) -> None:
        self.payments: dict[str, VerifiedPayment] = {}
        self.error: Exception | None = None

    def add(self, reference: str, amount: str, metadata: dict[str, str]) -> None:
        self.payments[reference] = VerifiedPayment(
            payment_reference=reference,
            payment_intent_id=reference if reference.startswith("pi_") else None,
            paid_amount=Decimal(amount),
            metadata=metadata,
        )

    def verify_payment(self, payment_intent_id=None, session_id=None) -> VerifiedPayment:
        if self.error is not None:
            raise self.error
        return self.payments[payment_intent_id or session_id]


class FakeShopify:
    def __init__(self) -> None:
        self.customers: list[dict[str, Any]] = []
        self.orders: list[dict[str, Any]] = []
        self.calls: list[str] = []
        self.order_error: ShopifyAPIError | None = None
        self.customer_error: ShopifyAPIError | None = None
        # Raised after the order is stored, like a connection dropped mid-response.
        self.error_after_create: Exception | None = None

    def search_customers(self, email: str) -> list[dict[str, Any]]:
        self.calls.append("search_customers")
        if self.customer_error:
            raise self.customer_error
        return [c for c in self.customers if c["email"] == email]

    def update_customer(self, customer_id: int, fields: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("update_customer")
        if self.customer_error:
            raise self.customer_error
        return {"id": customer_id, **fields}

    def create_customer(self, fields: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("create_customer")
        if self.customer_error:
            raise self.customer_error
        customer = {"id": 500 + len(self.customers), **fields}
        self.customers.append(customer)
        return customer

    def create_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("create_order")
        if self.order_error:
            raise self.order_error
        order = {
            "id": 9000 + len(self.orders),
            "order_number": 1001 + len(self.orders),
            **payload["order"],
        }
        self.orders.append(order)
        if self.error_after_create:
            raise self.error_after_create
        return order

    def list_orders(self, created_at_min: str, limit: int = 250) -> list[dict[str, Any]]:
        self.calls.append("list_orders")
        return list(self.orders)


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    return Config(
        STRIPE_SECRET_KEY="sk_test_123",
        SHOPIFY_ACCESS_TOKEN="shpat_test",
        SHOPIFY_STORE_URL="https://test-store.myshopify.com/",
        DATABASE_URL=f"sqlite+pysqlite:///{tmp_path / 'orders.db'}",
        STATE_DIR=str(tmp_path / "state"),
    )


@pytest.fixture()
def store(config: Config) -> OrderStore:
    init_db(config.DATABASE_URL)
    return OrderStore(session_factory(config.DATABASE_URL))


@pytest.fixture()
def payments() -> FakePayments:
    return FakePayments()


@pytest.fixture()
def shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture()
def processor(config: Config, payments: FakePayments, shopify: FakeShopify, store: OrderStore) -> OrderProcessor:
    return OrderProcessor(config=config, payments=payments, shopify=shopify, store=store)


@pytest.fixture()
def add_draft(config: Config, store: OrderStore):
    def _add(draft_id: str, draft_data: dict[str, Any], total_amount: float | None) -> None:
        sessions = session_factory(config.DATABASE_URL)
        with sessions() as session, session.begin():
            session.add(OrderDraft(id=draft_id, draft_data=draft_data, total_amount=total_amount))

    return _add


def order_metadata(**overrides: str) -> dict[str, str]:
    metadata = {
        "customer_name": "Jamie Rivera",
        "customer_email": "jamie@example.com",
        "customer_phone": "512-555-0100",
        "delivery_date": "2025-06-14",
        "delivery_time": "2:00 PM - 3:00 PM",
        "delivery_instructions": "Leave at the front desk",
        "delivery_address": "123 Main St, Austin, TX 78701",
    }
    metadata.update(overrides)
    return metadata
