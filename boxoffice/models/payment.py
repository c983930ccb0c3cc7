"""Payment ORM — the record of a successful capture.

Invariants:
    - Created only on a completed capture, inside the finalization transaction
    - transaction_id, external_order_id and order_id are each unique:
      a duplicate finalization loses on the constraint instead of double-booking
    - payment_status moves forward only: completed -> refunded

Design Decisions:
    - payment_details keeps the raw processor payload (JSON) for support lookups
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, JSON, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from boxoffice.db.base import Base


class Payment(Base):
    """Captured payment for an order."""
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id"), nullable=False, unique=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default="paypal",
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="completed",
    )
    transaction_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
    )
    external_order_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
    )
    capture_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    provider_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
