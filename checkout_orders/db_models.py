from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Float, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class OrderDraft(Base):
    """Cart snapshot written by checkout before payment; read-only here."""

    __tablename__ = "order_drafts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    draft_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    total_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class CustomerOrder(Base):
    __tablename__ = "customer_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # One row per payment; the unique index is what makes order creation at-most-once.
    payment_reference: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String, nullable=True)

    order_number: Mapped[str | None] = mapped_column(String, nullable=True)
    shopify_order_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False)

    subtotal: Mapped[float | None] = mapped_column(Float, nullable=True)
    delivery_fee: Mapped[float | None] = mapped_column(Float, nullable=True)
    sales_tax: Mapped[float | None] = mapped_column(Float, nullable=True)
    tip_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_amount: Mapped[float | None] = mapped_column(Float, nullable=True)

    delivery_date: Mapped[str | None] = mapped_column(String, nullable=True)
    delivery_time: Mapped[str | None] = mapped_column(String, nullable=True)
    delivery_address: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    line_items: Mapped[list | None] = mapped_column(JSON, nullable=True)
    special_instructions: Mapped[str | None] = mapped_column(String, nullable=True)
    affiliate_code: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
