"""Inventory Route — availability adjustments for the event-management collaborator.

Invariants:
    - Only the organizer owning the event, or an admin, may adjust availability
    - The adjustment is one atomic conditional update (services/inventory_ledger.py)
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.api.deps import get_actor
from boxoffice.core.domain_types import Actor, Role
from boxoffice.core.errors import NotFoundError
from boxoffice.core.order_rules import ensure_owner, ensure_role
from boxoffice.infrastructure.database import get_db
from boxoffice.models.event import Event
from boxoffice.schemas.inventory import AvailabilityUpdate, TicketTypeResponse
from boxoffice.services.inventory_ledger import InventoryLedger

router = APIRouter(prefix="/api/v1/events", tags=["inventory"])


@router.patch(
    "/{event_id}/ticket-types/{ticket_type}/availability",
    response_model=TicketTypeResponse,
)
async def update_availability(
    event_id: UUID,
    ticket_type: str,
    body: AvailabilityUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    ensure_role(actor, Role.ORGANIZER, Role.ADMIN)
    organizer_id = await db.scalar(select(Event.organizer_id).where(Event.id == event_id))
    if organizer_id is None:
        raise NotFoundError("Event", str(event_id))
    ensure_owner(actor, organizer_id, "event")

    row = await InventoryLedger(db).update_ticket_type_availability(
        event_id, ticket_type, body.delta,
    )
    await db.commit()
    return TicketTypeResponse.model_validate(row)
