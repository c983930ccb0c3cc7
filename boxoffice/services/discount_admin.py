"""Discount Administration — organizer-facing create/update/delete/list/stats.

Invariants:
    - Organizers manage discounts only for events they own; admins manage any
    - An organizer's discount must name at least one event
    - Codes are unique case-insensitively (stored upper-cased)
    - code, usage_count and created_by never change after creation
    - usage_limit cannot be lowered below the current usage_count
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.discount_rules import (
    as_utc, is_expired, is_maxed_out, normalize_code, validate_discount_definition,
)
from boxoffice.core.domain_types import Actor, Role
from boxoffice.core.errors import (
    AuthorizationError, ConflictError, ErrorContext, NotFoundError, ValidationError,
)
from boxoffice.core.order_rules import ensure_role
from boxoffice.infrastructure.database import commit_or_conflict
from boxoffice.models.discount import Discount, discount_events
from boxoffice.models.event import Event
from boxoffice.schemas.discount import DiscountCreate, DiscountStats, DiscountUpdate
from boxoffice.services.discount_validator import terms_from_model

logger = logging.getLogger(__name__)


class DiscountAdmin:
    """Discount CRUD scoped to the caller's events."""

    def __init__(
        self, db: AsyncSession, clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def create(self, actor: Actor, payload: DiscountCreate) -> Discount:
        ensure_role(actor, Role.ORGANIZER, Role.ADMIN)
        code = normalize_code(payload.code)
        validate_discount_definition(
            payload.rule.discount_type, payload.rule.discount_value,
            payload.start_date, payload.end_date,
        )
        if not payload.event_ids and not actor.is_admin:
            raise ValidationError(
                "At least one applicable event is required", field="event_ids",
            )
        events = await self._load_managed_events(actor, payload.event_ids)
        await self._ensure_code_free(code)

        discount = Discount(
            code=code,
            description=payload.description,
            discount_type=payload.rule.discount_type,
            discount_value=payload.rule.discount_value,
            scope=payload.scope.value,
            minimum_purchase_amount=payload.minimum_purchase_amount,
            start_date=payload.start_date,
            end_date=payload.end_date,
            usage_limit=payload.usage_limit,
            usage_count=0,
            is_active=payload.is_active,
            created_by=actor.user_id,
            events=events,
        )
        self.db.add(discount)
        await commit_or_conflict(
            self.db, ConflictError("Discount code already exists", "DUPLICATE_DISCOUNT_CODE"),
        )
        logger.info(f"Discount {code} created", extra={"discount_id": str(discount.id)})
        return discount

    async def update(
        self, actor: Actor, discount_id: UUID, payload: DiscountUpdate,
    ) -> Discount:
        discount = await self._get_managed(actor, discount_id)
        changes = payload.model_dump(exclude_unset=True)

        discount_type = payload.rule.discount_type if payload.rule else discount.discount_type
        discount_value = (
            payload.rule.discount_value if payload.rule else Decimal(discount.discount_value)
        )
        start_date = changes.get("start_date", discount.start_date)
        end_date = changes.get("end_date", discount.end_date)
        usage_limit = changes.get("usage_limit", discount.usage_limit)
        validate_discount_definition(discount_type, discount_value, start_date, end_date)
        if usage_limit is not None and usage_limit < discount.usage_count:
            raise ValidationError(
                f"Usage limit cannot be lower than current usage ({discount.usage_count})",
                field="usage_limit",
            )
        events = None
        if payload.event_ids is not None:
            events = await self._load_managed_events(actor, payload.event_ids)
            if not events and not actor.is_admin:
                raise ValidationError(
                    "At least one applicable event is required", field="event_ids",
                )

        discount.discount_type = discount_type
        discount.discount_value = discount_value
        discount.start_date = start_date
        discount.end_date = end_date
        discount.usage_limit = usage_limit
        if events is not None:
            discount.events = events
        if payload.scope is not None:
            discount.scope = payload.scope.value
        if "description" in changes:
            discount.description = changes["description"]
        for name in ("minimum_purchase_amount", "is_active"):
            if changes.get(name) is not None:
                setattr(discount, name, changes[name])
        discount.updated_at = self._clock()
        await self.db.commit()
        await self.db.refresh(discount)
        logger.info(f"Discount {discount.code} updated", extra={"discount_id": str(discount.id)})
        return discount

    async def delete(self, actor: Actor, discount_id: UUID) -> None:
        discount = await self._get_managed(actor, discount_id)
        code = discount.code
        await self.db.delete(discount)
        await self.db.commit()
        logger.info(f"Discount {code} deleted", extra={"discount_id": str(discount_id)})

    async def list_for_event(self, actor: Actor, event_id: UUID) -> list[Discount]:
        await self._load_managed_events(actor, [event_id])
        result = await self.db.execute(
            select(Discount)
            .join(discount_events, discount_events.c.discount_id == Discount.id)
            .where(discount_events.c.event_id == event_id)
            .order_by(Discount.created_at.desc())
        )
        return list(result.scalars().unique().all())

    async def get_stats(self, actor: Actor, discount_id: UUID) -> DiscountStats:
        discount = await self._get_managed(actor, discount_id)
        terms = terms_from_model(discount)
        now = self._clock()
        expired = is_expired(terms, now)
        maxed = is_maxed_out(discount.usage_count, discount.usage_limit)
        start = as_utc(discount.start_date)
        started = start is None or now >= start
        percentage = None
        remaining = None
        if discount.usage_limit:
            percentage = (
                Decimal(discount.usage_count) * 100 / Decimal(discount.usage_limit)
            ).quantize(Decimal("0.01"))
            remaining = max(0, discount.usage_limit - discount.usage_count)
        return DiscountStats(
            discount_id=discount.id,
            code=discount.code,
            usage_count=discount.usage_count,
            usage_limit=discount.usage_limit,
            usage_percentage=percentage,
            remaining_uses=remaining,
            is_expired=expired,
            is_maxed_out=maxed,
            is_effectively_active=discount.is_active and started and not expired and not maxed,
        )

    # ─── Helpers ────────────────────────────────────────────────

    async def _get_managed(self, actor: Actor, discount_id: UUID) -> Discount:
        ensure_role(actor, Role.ORGANIZER, Role.ADMIN)
        result = await self.db.execute(
            select(Discount)
            .where(Discount.id == discount_id)
            .execution_options(populate_existing=True)
        )
        discount = result.scalar_one_or_none()
        if discount is None:
            raise NotFoundError("Discount", str(discount_id))
        if not actor.is_admin:
            if not discount.events and discount.created_by != actor.user_id:
                raise AuthorizationError("Not authorized to manage this discount")
            self._ensure_owns(actor, discount.events)
        return discount

    async def _load_managed_events(self, actor: Actor, event_ids: list[UUID]) -> list[Event]:
        ensure_role(actor, Role.ORGANIZER, Role.ADMIN)
        if not event_ids:
            return []
        result = await self.db.execute(select(Event).where(Event.id.in_(event_ids)))
        events = list(result.scalars().all())
        found = {event.id for event in events}
        for event_id in event_ids:
            if event_id not in found:
                raise NotFoundError("Event", str(event_id))
        if not actor.is_admin:
            self._ensure_owns(actor, events)
        return events

    @staticmethod
    def _ensure_owns(actor: Actor, events: list[Event]) -> None:
        for event in events:
            if event.organizer_id != actor.user_id:
                raise AuthorizationError(
                    "Not authorized to manage discounts for this event",
                    context=ErrorContext(event_id=str(event.id)),
                )

    async def _ensure_code_free(self, code: str) -> None:
        taken = await self.db.scalar(select(Discount.id).where(Discount.code == code))
        if taken is not None:
            raise ConflictError("Discount code already exists", "DUPLICATE_DISCOUNT_CODE")
