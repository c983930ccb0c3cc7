"""Inventory Schemas — availability adjustments from the event-management collaborator."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AvailabilityUpdate(BaseModel):
    """Signed change to availability; zero is refused by the ledger."""
    delta: int


class TicketTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    type: str
    price: Decimal
    capacity: int
    availability: int
