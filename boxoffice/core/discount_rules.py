"""Discount Rules — pure evaluation of a discount against a cart.

Invariants:
    - Discount kinds are tagged variants: PercentageDiscount | FixedDiscount
    - Percentage amount = subtotal * value / 100 (both scopes)
    - Fixed amount = value (cart scope) or value * quantity (per_ticket scope)
    - Result is rounded half-up to cents and clamped to the subtotal
    - Minimum purchase: per_ticket scope compares ticket count,
      cart scope compares subtotal
    - Check order: code/applicability, start, end, usage, ticket types, minimum
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from boxoffice.core.domain_types import DiscountScope, DiscountType
from boxoffice.core.errors import (
    BelowMinimumPurchaseError,
    DiscountExpiredError,
    DiscountLimitReachedError,
    ErrorContext,
    InvalidDiscountCodeError,
    ValidationError,
    WrongTicketTypeError,
)
from boxoffice.core.money import ZERO, to_cents


@dataclass(frozen=True)
class PercentageDiscount:
    value: Decimal
    scope: DiscountScope = DiscountScope.CART
    kind: ClassVar[DiscountType] = DiscountType.PERCENTAGE

    def raw_amount(self, subtotal: Decimal, quantity: int) -> Decimal:
        return subtotal * self.value / Decimal(100)


@dataclass(frozen=True)
class FixedDiscount:
    value: Decimal
    scope: DiscountScope = DiscountScope.CART
    kind: ClassVar[DiscountType] = DiscountType.FIXED

    def raw_amount(self, subtotal: Decimal, quantity: int) -> Decimal:
        if self.scope == DiscountScope.PER_TICKET:
            return self.value * quantity
        return self.value


DiscountRule = PercentageDiscount | FixedDiscount


def rule_from(
    discount_type: DiscountType | str, value: Decimal, scope: DiscountScope | str,
) -> DiscountRule:
    """Build the tagged variant from persisted columns."""
    kind = DiscountType(discount_type)
    scope = DiscountScope(scope)
    if kind == DiscountType.PERCENTAGE:
        return PercentageDiscount(value=Decimal(value), scope=scope)
    return FixedDiscount(value=Decimal(value), scope=scope)


@dataclass(frozen=True)
class DiscountTerms:
    """Read-only view of a persisted discount, enough to evaluate it."""
    discount_id: UUID
    code: str
    rule: DiscountRule
    is_active: bool
    start_date: datetime | None
    end_date: datetime | None
    usage_count: int
    usage_limit: int | None
    minimum_purchase_amount: Decimal
    applicable_event_ids: frozenset[UUID]


@dataclass(frozen=True)
class DiscountQuote:
    valid: bool
    discount_id: UUID
    discount_amount: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    scope: DiscountScope


def normalize_code(code: str | None) -> str:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise InvalidDiscountCodeError("Discount code is required")
    return normalized


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_expired(terms: DiscountTerms, now: datetime) -> bool:
    end = as_utc(terms.end_date)
    return end is not None and now > end


def is_maxed_out(usage_count: int, usage_limit: int | None) -> bool:
    return usage_limit is not None and usage_count >= usage_limit


def check_redeemable(terms: DiscountTerms, event_id: UUID, now: datetime) -> None:
    """Raise the first failing availability rule for this event at `now`."""
    ctx = ErrorContext(discount_id=str(terms.discount_id), event_id=str(event_id))
    if not terms.is_active:
        raise InvalidDiscountCodeError(context=ctx)
    if terms.applicable_event_ids and event_id not in terms.applicable_event_ids:
        raise InvalidDiscountCodeError(context=ctx)
    start = as_utc(terms.start_date)
    if start is not None and now < start:
        raise InvalidDiscountCodeError("Discount code is not active yet", context=ctx)
    if is_expired(terms, now):
        raise DiscountExpiredError(context=ctx)
    if is_maxed_out(terms.usage_count, terms.usage_limit):
        raise DiscountLimitReachedError(context=ctx)


def check_ticket_types(requested: list[str], offered: set[str]) -> None:
    for ticket_type in requested:
        if ticket_type not in offered:
            raise WrongTicketTypeError(ticket_type)


def check_minimum_purchase(terms: DiscountTerms, quantity: int, subtotal: Decimal) -> None:
    minimum = terms.minimum_purchase_amount or ZERO
    if minimum <= 0:
        return
    if terms.rule.scope == DiscountScope.PER_TICKET:
        if quantity < minimum:
            raise BelowMinimumPurchaseError(
                f"Minimum {int(minimum)} tickets required for this discount code",
            )
    elif subtotal < minimum:
        raise BelowMinimumPurchaseError(
            f"Minimum purchase amount of {to_cents(minimum)} required for this discount",
        )


def calculate_discount_amount(rule: DiscountRule, subtotal: Decimal, quantity: int) -> Decimal:
    amount = to_cents(rule.raw_amount(subtotal, quantity))
    return min(amount, to_cents(subtotal))


def evaluate_discount(
    terms: DiscountTerms,
    *,
    event_id: UUID,
    requested_types: list[str],
    offered_types: set[str],
    quantity: int,
    subtotal: Decimal,
    now: datetime,
) -> DiscountQuote:
    """Full validation pipeline; returns a quote or raises the typed failure."""
    check_redeemable(terms, event_id, now)
    check_ticket_types(requested_types, offered_types)
    check_minimum_purchase(terms, quantity, subtotal)
    return DiscountQuote(
        valid=True,
        discount_id=terms.discount_id,
        discount_amount=calculate_discount_amount(terms.rule, subtotal, quantity),
        discount_type=terms.rule.kind,
        discount_value=terms.rule.value,
        scope=terms.rule.scope,
    )


# ─── Administration rules ───────────────────────────────────────

def validate_discount_definition(
    discount_type: DiscountType | str,
    value: Decimal,
    start_date: datetime | None,
    end_date: datetime | None,
) -> None:
    """Definition rules for create/update."""
    try:
        kind = DiscountType(discount_type)
    except ValueError:
        raise ValidationError(
            "Invalid discount type. Must be 'percentage' or 'fixed'",
            field="discount_type",
        )
    if value <= 0:
        raise ValidationError("Discount value must be greater than 0", field="discount_value")
    if kind == DiscountType.PERCENTAGE and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100%", field="discount_value")
    start, end = as_utc(start_date), as_utc(end_date)
    if start is not None and end is not None and start >= end:
        raise ValidationError("Start date must be before end date", field="start_date")
