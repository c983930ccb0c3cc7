"""Inventory Ledger — soft holds and atomic availability counters per ticket type.

Invariants:
    - reserve() never changes availability; it checks a live read and persists a held hold
    - commit() is a single conditional UPDATE: availability - q WHERE availability >= q
    - increase() is bounded by capacity in the same statement
    - A hold moves held -> committed | released exactly once (conditional UPDATE on status)
    - A refused commit leaves the hold held and availability untouched
    - The ledger flushes; the caller's transaction decides whether anything sticks

Design Decisions:
    - synchronize_session=False on counter updates: rowcount decides success and
      fresh values are re-read with populate_existing instead of evaluated in Python
    - Soft holds: N concurrent reservations may all succeed; only the first k commits win
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.domain_types import HoldStatus
from boxoffice.core.errors import (
    ErrorContext,
    InvalidTransitionError,
    InventoryConflictError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
    WrongTicketTypeError,
)
from boxoffice.models.event import Event, TicketType
from boxoffice.models.inventory_hold import InventoryHold

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Per-event ticket-type inventory."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_ticket_type(self, event_id: UUID, ticket_type: str) -> TicketType:
        """Current row for (event, type); NotFoundError / WrongTicketTypeError otherwise."""
        event_exists = await self.db.scalar(select(Event.id).where(Event.id == event_id))
        if event_exists is None:
            raise NotFoundError("Event", str(event_id))
        result = await self.db.execute(
            select(TicketType)
            .where(TicketType.event_id == event_id)
            .where(TicketType.type == ticket_type)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise WrongTicketTypeError(
                ticket_type, context=ErrorContext(event_id=str(event_id)),
            )
        return row

    async def available(self, ticket_type_id: UUID) -> int:
        """Live availability straight from the store."""
        return await self.db.scalar(
            select(TicketType.availability).where(TicketType.id == ticket_type_id),
        )

    async def reserve(
        self,
        event_id: UUID,
        ticket_type: str,
        quantity: int,
        order_id: UUID | None = None,
    ) -> InventoryHold:
        _check_quantity(quantity)
        row = await self.get_ticket_type(event_id, ticket_type)
        available = await self.available(row.id)
        if available < quantity:
            raise OutOfStockError(
                ticket_type, quantity, available,
                context=ErrorContext(event_id=str(event_id)),
            )
        hold = InventoryHold(
            order_id=order_id,
            event_id=event_id,
            ticket_type_id=row.id,
            ticket_type=row.type,
            quantity=quantity,
            status=HoldStatus.HELD.value,
        )
        self.db.add(hold)
        await self.db.flush()
        logger.info(
            f"Reserved {quantity} x '{ticket_type}'",
            extra={"event_id": str(event_id), "hold_id": str(hold.id)},
        )
        return hold

    async def release(self, hold: InventoryHold) -> None:
        """held -> released. Already released is a no-op; committed is refused."""
        if hold.status == HoldStatus.RELEASED.value:
            return
        if hold.status == HoldStatus.COMMITTED.value:
            raise InvalidTransitionError(
                "Committed reservations cannot be released; restock with increase()",
            )
        hold.status = HoldStatus.RELEASED.value
        hold.resolved_at = datetime.now(timezone.utc)
        await self.db.flush()
        logger.info(
            f"Released hold of {hold.quantity} x '{hold.ticket_type}'",
            extra={"hold_id": str(hold.id)},
        )

    async def commit(self, hold: InventoryHold) -> None:
        """Permanently decrement availability for a held reservation."""
        if hold.status == HoldStatus.COMMITTED.value:
            return
        if hold.status != HoldStatus.HELD.value:
            raise InvalidTransitionError(
                f"Cannot commit a {hold.status} reservation",
            )
        now = datetime.now(timezone.utc)
        claimed = await self.db.execute(
            update(InventoryHold)
            .where(InventoryHold.id == hold.id)
            .where(InventoryHold.status == HoldStatus.HELD.value)
            .values(status=HoldStatus.COMMITTED.value, resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            # Another transaction settled this hold first.
            await self.db.refresh(hold)
            if hold.status == HoldStatus.COMMITTED.value:
                return
            raise InvalidTransitionError(f"Cannot commit a {hold.status} reservation")

        try:
            await self._decrement(
                hold.ticket_type_id, hold.ticket_type, hold.quantity, hold.event_id,
            )
        except InventoryConflictError:
            await self.db.execute(
                update(InventoryHold)
                .where(InventoryHold.id == hold.id)
                .values(status=HoldStatus.HELD.value, resolved_at=None)
                .execution_options(synchronize_session=False)
            )
            raise
        await self.db.refresh(hold)
        logger.info(
            f"Committed {hold.quantity} x '{hold.ticket_type}'",
            extra={"event_id": str(hold.event_id), "hold_id": str(hold.id)},
        )

    async def increase(
        self, event_id: UUID, ticket_type: str, quantity: int,
    ) -> TicketType:
        """Restock bounded by capacity."""
        _check_quantity(quantity)
        row = await self.get_ticket_type(event_id, ticket_type)
        result = await self.db.execute(
            update(TicketType)
            .where(TicketType.id == row.id)
            .where(TicketType.availability + quantity <= TicketType.capacity)
            .values(availability=TicketType.availability + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InventoryConflictError(
                ticket_type, quantity,
                message=f"Restocking {quantity} '{ticket_type}' ticket(s) would exceed capacity",
                context=ErrorContext(event_id=str(event_id)),
            )
        logger.info(
            f"Restocked {quantity} x '{ticket_type}'",
            extra={"event_id": str(event_id)},
        )
        return await self.get_ticket_type(event_id, ticket_type)

    async def update_ticket_type_availability(
        self, event_id: UUID, ticket_type: str, delta: int,
    ) -> TicketType:
        """Signed adjustment for the event-management collaborator."""
        if delta == 0:
            raise ValidationError("Availability change must be non-zero", field="delta")
        if delta > 0:
            return await self.increase(event_id, ticket_type, delta)
        row = await self.get_ticket_type(event_id, ticket_type)
        await self._decrement(row.id, row.type, -delta, event_id)
        return await self.get_ticket_type(event_id, ticket_type)

    async def _decrement(
        self, ticket_type_id: UUID, ticket_type: str, quantity: int, event_id: UUID,
    ) -> None:
        result = await self.db.execute(
            update(TicketType)
            .where(TicketType.id == ticket_type_id)
            .where(TicketType.availability >= quantity)
            .values(availability=TicketType.availability - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                f"Refused decrement of {quantity} x '{ticket_type}'",
                extra={"event_id": str(event_id)},
            )
            raise InventoryConflictError(
                ticket_type, quantity, context=ErrorContext(event_id=str(event_id)),
            )


def _check_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError("Quantity must be at least 1", field="quantity")
