"""Discount Validator — looks up a code and quotes it against a cart; applies usage on payment.

Invariants:
    - Codes are matched after strip + upper
    - validate()/validate_cart() are read-only: they never touch usage_count
    - apply() is one conditional UPDATE: usage_count + 1 WHERE limit unset or not reached
    - apply() is called only from capture finalization, once per paid order

Design Decisions:
    - Persisted rows are turned into DiscountTerms (core/discount_rules.py) so the
      check order and arithmetic stay pure and unit-testable
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.discount_rules import (
    DiscountQuote, DiscountTerms, evaluate_discount, normalize_code, rule_from,
)
from boxoffice.core.errors import (
    DiscountLimitReachedError, ErrorContext, InvalidDiscountCodeError, NotFoundError,
)
from boxoffice.core.money import to_cents
from boxoffice.models.discount import Discount
from boxoffice.models.event import Event, TicketType

logger = logging.getLogger(__name__)


def terms_from_model(discount: Discount) -> DiscountTerms:
    return DiscountTerms(
        discount_id=discount.id,
        code=discount.code,
        rule=rule_from(discount.discount_type, discount.discount_value, discount.scope),
        is_active=discount.is_active,
        start_date=discount.start_date,
        end_date=discount.end_date,
        usage_count=discount.usage_count,
        usage_limit=discount.usage_limit,
        minimum_purchase_amount=discount.minimum_purchase_amount or Decimal("0"),
        applicable_event_ids=frozenset(event.id for event in discount.events),
    )


class DiscountValidator:
    """Discount lookup, quoting and usage accounting."""

    def __init__(
        self, db: AsyncSession, clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_by_code(self, code: str) -> Discount:
        normalized = normalize_code(code)
        result = await self.db.execute(
            select(Discount)
            .where(Discount.code == normalized)
            .execution_options(populate_existing=True)
        )
        discount = result.scalar_one_or_none()
        if discount is None:
            raise InvalidDiscountCodeError()
        return discount

    async def validate(
        self,
        code: str,
        event_id: UUID,
        ticket_type: str,
        quantity: int,
        subtotal: Decimal,
    ) -> DiscountQuote:
        """Single-line form of validate_cart()."""
        return await self.validate_cart(code, event_id, [(ticket_type, quantity)], subtotal)

    async def validate_cart(
        self,
        code: str,
        event_id: UUID,
        lines: Sequence[tuple[str, int]],
        subtotal: Decimal,
    ) -> DiscountQuote:
        """Quote `code` for the cart; raises the first failing rule."""
        event_exists = await self.db.scalar(select(Event.id).where(Event.id == event_id))
        if event_exists is None:
            raise NotFoundError("Event", str(event_id))
        discount = await self.get_by_code(code)
        offered = await self.db.scalars(
            select(TicketType.type).where(TicketType.event_id == event_id),
        )
        quote = evaluate_discount(
            terms_from_model(discount),
            event_id=event_id,
            requested_types=[ticket_type for ticket_type, _ in lines],
            offered_types=set(offered),
            quantity=sum(quantity for _, quantity in lines),
            subtotal=to_cents(subtotal),
            now=self._clock(),
        )
        logger.info(
            f"Discount {discount.code} quoted at {quote.discount_amount}",
            extra={"discount_id": str(discount.id), "event_id": str(event_id)},
        )
        return quote

    async def apply(self, discount_id: UUID) -> None:
        """Consume one use; DiscountLimitReachedError when the limit is already met."""
        result = await self.db.execute(
            update(Discount)
            .where(Discount.id == discount_id)
            .where(or_(
                Discount.usage_limit.is_(None),
                Discount.usage_count < Discount.usage_limit,
            ))
            .values(usage_count=Discount.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info("Discount usage applied", extra={"discount_id": str(discount_id)})
            return
        exists = await self.db.scalar(select(Discount.id).where(Discount.id == discount_id))
        if exists is None:
            raise NotFoundError("Discount", str(discount_id))
        raise DiscountLimitReachedError(context=ErrorContext(discount_id=str(discount_id)))
