from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from .db_models import CustomerOrder, OrderDraft
from .errors import DuplicateOrderError
from .models import ExistingOrder, LocalOrderRecord

logger = logging.getLogger(__name__)

PENDING = "pending"
CONFIRMED = "confirmed"


def _existing(row: CustomerOrder) -> ExistingOrder:
    return ExistingOrder(
        payment_reference=row.payment_reference,
        order_number=row.order_number,
        shopify_order_id=row.shopify_order_id,
        status=row.status,
    )


def _apply_record(row: CustomerOrder, record: LocalOrderRecord) -> None:
    row.order_number = record.order_number
    row.shopify_order_id = record.shopify_order_id
    row.payment_intent_id = record.payment_intent_id
    row.status = record.status
    row.subtotal = float(record.amounts.subtotal)
    row.delivery_fee = float(record.amounts.delivery_fee)
    row.sales_tax = float(record.amounts.sales_tax)
    row.tip_amount = float(record.amounts.tip_amount)
    row.total_amount = float(record.amounts.total_amount)
    row.delivery_date = record.delivery_date or None
    row.delivery_time = record.delivery_time or None
    row.delivery_address = record.delivery_address
    row.line_items = record.line_items
    row.special_instructions = record.special_instructions
    row.affiliate_code = record.affiliate_code or None


class OrderStore:
    """Local mirror of drafts and created orders.

    SQLAlchemy errors propagate; callers decide which failures are fatal.
    """

    def __init__(self, sessions: sessionmaker) -> None:
        self._sessions = sessions

    def get_draft(self, draft_id: str) -> dict[str, Any] | None:
        with self._sessions() as session:
            draft = session.get(OrderDraft, draft_id)
            if draft is None:
                return None
            return {"draft_data": draft.draft_data or {}, "total_amount": draft.total_amount}

    def find_order(self, payment_reference: str) -> ExistingOrder | None:
        with self._sessions() as session:
            row = session.scalars(
                select(CustomerOrder).where(CustomerOrder.payment_reference == payment_reference)
            ).first()
            return _existing(row) if row is not None else None

    def find_by_shopify_order_id(self, shopify_order_id: str) -> ExistingOrder | None:
        with self._sessions() as session:
            row = session.scalars(
                select(CustomerOrder).where(CustomerOrder.shopify_order_id == shopify_order_id)
            ).first()
            return _existing(row) if row is not None else None

    def claim(self, payment_reference: str, payment_intent_id: str | None = None) -> None:
        """Reserve the payment reference with a pending row.

        Raises DuplicateOrderError when another request already holds it.
        """
        try:
            with self._sessions() as session, session.begin():
                session.add(
                    CustomerOrder(
                        payment_reference=payment_reference,
                        payment_intent_id=payment_intent_id,
                        status=PENDING,
                    )
                )
        except IntegrityError as e:
            raise DuplicateOrderError(payment_reference) from e

    def release(self, payment_reference: str) -> None:
        with self._sessions() as session, session.begin():
            session.execute(
                delete(CustomerOrder).where(
                    CustomerOrder.payment_reference == payment_reference,
                    CustomerOrder.status == PENDING,
                )
            )

    def record_order(self, record: LocalOrderRecord) -> None:
        """Complete a pending claim, or insert the row if there was none."""
        try:
            with self._sessions() as session, session.begin():
                row = session.scalars(
                    select(CustomerOrder).where(
                        CustomerOrder.payment_reference == record.payment_reference
                    )
                ).first()
                if row is not None and row.status != PENDING:
                    raise DuplicateOrderError(record.payment_reference)
                if row is None:
                    row = CustomerOrder(payment_reference=record.payment_reference)
                    session.add(row)
                _apply_record(row, record)
        except IntegrityError as e:
            raise DuplicateOrderError(record.payment_reference) from e
