"""Event & TicketType ORM — the event and its per-type inventory counters.

Invariants:
    - 0 <= availability <= capacity (CHECK constraint)
    - price >= 0; type unique within an event
    - availability only moves through single conditional UPDATEs (services/inventory_ledger.py)
    - capacity - availability = tickets ever sold for the type

Design Decisions:
    - TicketType is a child table rather than an embedded array so the counters
      can be updated atomically per row
    - Event CRUD is owned by the event-management collaborator; only the
      fields the settlement core reads are mapped here
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric,
    String, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.db.base import Base


class Event(Base):
    """Event — owner of ticket-type inventory."""
    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organizer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    starts_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    event_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    booking_available: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    ticket_types: Mapped[list["TicketType"]] = relationship(
        "TicketType", back_populates="event",
        cascade="all, delete-orphan", lazy="selectin",
    )


class TicketType(Base):
    """Ticket type of an event with its capacity and remaining availability."""
    __tablename__ = "ticket_types"
    __table_args__ = (
        UniqueConstraint("event_id", "type", name="uq_ticket_types_event_type"),
        CheckConstraint("availability >= 0", name="ck_ticket_types_availability_non_negative"),
        CheckConstraint("availability <= capacity", name="ck_ticket_types_availability_le_capacity"),
        CheckConstraint("capacity >= 0", name="ck_ticket_types_capacity_non_negative"),
        CheckConstraint("price >= 0", name="ck_ticket_types_price_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    availability: Mapped[int] = mapped_column(Integer, nullable=False)

    event: Mapped["Event"] = relationship(
        "Event", back_populates="ticket_types",
    )
