import logging
from typing import Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from .address import normalize_address
from .amounts import reconcile_amounts
from .checkout_metadata import read_checkout_details
from .config import Config
from .customers import upsert_customer
from .drafts import resolve_order
from .errors import DuplicateOrderError, ExternalOrderCreateFailedError, ShopifyAPIError
from .logs import log_step
from .models import (
    CreateOrderRequest,
    CreateOrderResponse,
    ExistingOrder,
    LocalOrderRecord,
    OrderAmounts,
    VerifiedPayment,
)
from .order_payload import OrderContext, build_order_payload, product_subtotal
from .order_store import OrderStore
from .shopify_client import ShopifyClient
from .stripe_client import StripeClient

logger = logging.getLogger(__name__)


def _duplicate_response(existing: ExistingOrder, amounts: OrderAmounts) -> CreateOrderResponse:
    message = "Order already exists - duplicate prevented"
    if existing.shopify_order_id is None:
        message = "Order creation already in progress - duplicate prevented"
    return CreateOrderResponse(
        shopify_order_id=existing.shopify_order_id,
        order_number=existing.order_number,
        total_amount=float(amounts.rounded().total_amount),
        message=message,
        duplicate_prevented=True,
    )


class OrderProcessor:
    """Turns a completed Stripe payment into a Shopify order, once."""

    def __init__(
        self,
        config: Config,
        payments: StripeClient,
        shopify: ShopifyClient,
        store: OrderStore,
    ):
        self.config = config
        self.payments = payments
        self.shopify = shopify
        self.store = store

    def _find_existing(self, payment_reference: str) -> Optional[ExistingOrder]:
        try:
            return self.store.find_order(payment_reference)
        except SQLAlchemyError as e:
            log_step(
                logger,
                "WARNING: Could not check for duplicates",
                level=logging.WARNING,
                error=str(e),
            )
            return None

    def _claim(self, payment: VerifiedPayment) -> bool:
        """Reserve the payment reference; DuplicateOrderError means another request holds it."""
        try:
            self.store.claim(payment.payment_reference, payment.payment_intent_id)
            return True
        except SQLAlchemyError as e:
            log_step(
                logger,
                "WARNING: Could not reserve payment reference, continuing unclaimed",
                level=logging.WARNING,
                error=str(e),
            )
            return False

    def _release(self, payment_reference: str) -> None:
        try:
            self.store.release(payment_reference)
        except SQLAlchemyError as e:
            log_step(
                logger,
                "WARNING: Could not release payment reference claim",
                level=logging.WARNING,
                payment_reference=payment_reference,
                error=str(e),
            )

    def _submit(self, payload: dict) -> dict:
        try:
            order = self.shopify.create_order(payload)
        except ShopifyAPIError as e:
            log_step(
                logger,
                "ERROR: Shopify order creation failed",
                level=logging.ERROR,
                status=e.status_code,
                error=e.body,
            )
            raise ExternalOrderCreateFailedError(
                e.status_code, e.body, outcome_unknown=e.status_code >= 500
            ) from e
        except (requests.RequestException, KeyError, ValueError) as e:
            log_step(logger, "ERROR: Shopify order creation failed", level=logging.ERROR, error=str(e))
            raise ExternalOrderCreateFailedError(None, str(e), outcome_unknown=True) from e

        log_step(
            logger,
            "SHOPIFY ORDER CREATED SUCCESSFULLY",
            shopify_order_id=order.get("id"),
            order_number=order.get("order_number"),
            total_price=order.get("total_price"),
            subtotal_price=order.get("subtotal_price"),
            total_tax=order.get("total_tax"),
        )
        return order

    def _persist(self, record: LocalOrderRecord) -> None:
        try:
            self.store.record_order(record)
            log_step(logger, "Order stored in database successfully")
        except (SQLAlchemyError, DuplicateOrderError) as e:
            log_step(
                logger,
                "WARNING: Failed to store order in database",
                level=logging.WARNING,
                payment_reference=record.payment_reference,
                shopify_order_id=record.shopify_order_id,
                error=str(e),
            )

    def create_order(self, request: CreateOrderRequest) -> CreateOrderResponse:
        """
        Run payment verification through order persistence for one request.

        Raises an OrderCreationError subclass for every fatal failure.
        """
        log_step(
            logger,
            "=== CREATE SHOPIFY ORDER STARTED ===",
            has_payment_intent_id=bool(request.payment_intent_id),
            has_session_id=bool(request.session_id),
        )

        payment = self.payments.verify_payment(request.payment_intent_id, request.session_id)
        details = read_checkout_details(payment.metadata)
        resolved = resolve_order(details, self.store)
        amounts = resolved.amounts

        existing = self._find_existing(payment.payment_reference)
        if existing is not None:
            log_step(
                logger,
                "ORDER ALREADY EXISTS - PREVENTING DUPLICATE",
                order_number=existing.order_number,
                shopify_order_id=existing.shopify_order_id,
                status=existing.status,
            )
            return _duplicate_response(existing, amounts)

        try:
            claimed = self._claim(payment)
        except DuplicateOrderError:
            existing = self._find_existing(payment.payment_reference)
            log_step(logger, "CONCURRENT REQUEST HOLDS THIS PAYMENT - PREVENTING DUPLICATE")
            return _duplicate_response(
                existing or ExistingOrder(payment_reference=payment.payment_reference, status="pending"),
                amounts,
            )

        try:
            # Compared before rounding so the tolerance applies to the real total.
            reconcile_amounts(payment.paid_amount, amounts.total_amount, self.config.AMOUNT_TOLERANCE)
            amounts = amounts.rounded()

            address = normalize_address(details.address_source)
            customer_id = upsert_customer(self.shopify, details, address)

            payload = build_order_payload(
                OrderContext(
                    cart_items=resolved.cart_items,
                    amounts=amounts,
                    address=address,
                    details=details,
                    payment_reference=payment.payment_reference,
                    customer_id=customer_id,
                    currency=self.config.CURRENCY,
                )
            )
        except Exception:
            if claimed:
                self._release(payment.payment_reference)
            raise

        try:
            order = self._submit(payload)
        except ExternalOrderCreateFailedError as e:
            if claimed and not e.outcome_unknown:
                self._release(payment.payment_reference)
            elif claimed:
                log_step(
                    logger,
                    "WARNING: Shopify outcome unknown, keeping pending claim for backfill",
                    level=logging.WARNING,
                    payment_reference=payment.payment_reference,
                )
            raise

        shopify_order_id = str(order["id"])
        order_number = str(order.get("order_number", ""))
        subtotal = product_subtotal(resolved.cart_items)

        self._persist(
            LocalOrderRecord(
                order_number=order_number,
                shopify_order_id=shopify_order_id,
                payment_reference=payment.payment_reference,
                payment_intent_id=payment.payment_intent_id,
                amounts=amounts.model_copy(update={"subtotal": subtotal}),
                delivery_date=details.delivery_date,
                delivery_time=details.delivery_time,
                delivery_address=address.as_record(details.delivery_instructions),
                line_items=[item.model_dump(mode="json") for item in resolved.cart_items],
                special_instructions=details.delivery_instructions,
                affiliate_code=details.affiliate_code or None,
            )
        )

        return CreateOrderResponse(
            shopify_order_id=shopify_order_id,
            order_number=order_number,
            total_amount=float(amounts.total_amount),
            subtotal=float(subtotal),
            delivery_fee=float(amounts.delivery_fee),
            sales_tax=float(amounts.sales_tax),
            tip_amount=float(amounts.tip_amount),
            shipping_address=order.get("shipping_address"),
            message="Order created successfully - driver tip sent in shipping_lines with delivery fee",
        )
