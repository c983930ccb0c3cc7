"""InventoryHold ORM — a persisted soft reservation against a ticket type.

Invariants:
    - status: held -> committed | released, both terminal
    - A held reservation never changes TicketType.availability
    - Commit decrements availability in the same transaction that marks the hold committed
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.db.base import Base


class InventoryHold(Base):
    """Reservation of `quantity` tickets of one type, optionally tied to an order."""
    __tablename__ = "inventory_holds"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_holds_quantity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True,
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id"), nullable=False,
    )
    ticket_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("ticket_types.id"), nullable=False,
    )
    ticket_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="held",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    order: Mapped["Order | None"] = relationship("Order", back_populates="holds")
