"""Discount ORM — discount codes and the events they apply to.

Invariants:
    - code unique, stored upper-cased
    - usage_limit IS NULL OR usage_count <= usage_limit (CHECK constraint)
    - usage_count only increases, through one conditional UPDATE per paid order
    - An empty applicable-events set means the code applies to any event

Design Decisions:
    - discount_type + scope columns, rebuilt into tagged variants by
      core/discount_rules.rule_from() before any arithmetic happens
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric,
    String, Table, Text, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.db.base import Base

discount_events = Table(
    "discount_events",
    Base.metadata,
    Column(
        "discount_id", Uuid,
        ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True,
    ),
    Column(
        "event_id", Uuid,
        ForeignKey("events.id", ondelete="CASCADE"), primary_key=True,
    ),
)


class Discount(Base):
    """Discount code with usage accounting."""
    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="ck_discounts_usage_within_limit",
        ),
        CheckConstraint("usage_count >= 0", name="ck_discounts_usage_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    scope: Mapped[str] = mapped_column(
        String(20), nullable=False, default="cart",
    )
    minimum_purchase_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0"),
    )
    start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    events: Mapped[list["Event"]] = relationship(
        "Event", secondary=discount_events, lazy="selectin",
    )
