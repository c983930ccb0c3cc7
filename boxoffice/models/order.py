"""Order ORM — the unit of sale and aggregate root of settlement.

Invariants:
    - total_amount = subtotal_amount - discount_amount; discount_amount <= subtotal_amount
    - payment_status: pending -> capture_unknown -> paid | failed; paid -> refunded
    - status: pending -> completed | cancelled; completed -> refund_requested -> refunded | completed
    - external_payment_id unique: one processor order per Order
    - Only services/settlement.py and services/refund_workflow.py mutate an Order

Design Decisions:
    - capture_unknown persisted before the gateway capture call, so a crash
      mid-capture leaves an explicit "reconcile me" marker instead of pending
    - Tickets and holds loaded eagerly (selectin): every read path needs them
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Numeric, String, Text, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.db.base import Base


class Order(Base):
    """Order aggregate — owns its Tickets and inventory holds."""
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("discount_amount >= 0", name="ck_orders_discount_non_negative"),
        CheckConstraint("discount_amount <= subtotal_amount", name="ck_orders_discount_le_subtotal"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    order_number: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id"), nullable=False,
    )
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("discounts.id", ondelete="SET NULL"), nullable=True,
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0"),
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default="paypal",
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    external_payment_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True,
    )
    approval_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Relationships
    tickets: Mapped[list["Ticket"]] = relationship(
        "Ticket", back_populates="order", order_by="Ticket.position",
        cascade="all, delete-orphan", lazy="selectin",
    )
    holds: Mapped[list["InventoryHold"]] = relationship(
        "InventoryHold", back_populates="order",
        cascade="all, delete-orphan", lazy="selectin",
    )
