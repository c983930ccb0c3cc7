"""Discount Validator — code lookup, quoting and usage accounting against the store.

Invariants:
    - Codes match after strip + upper
    - validate() never consumes usage
    - apply() increments once per call and refuses past the limit
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from boxoffice.core.errors import (
    DiscountExpiredError,
    DiscountLimitReachedError,
    InvalidDiscountCodeError,
    NotFoundError,
    WrongTicketTypeError,
)
from boxoffice.models.discount import Discount
from boxoffice.services.discount_validator import DiscountValidator


async def _usage(db, discount_id) -> int:
    return await db.scalar(select(Discount.usage_count).where(Discount.id == discount_id))


async def test_validate_quotes_percentage(validator, seed_event, seed_discount, test_db):
    """3 GA at 20.00 with SAVE10 -> 6.00 off."""
    quote = await validator.validate(" save10 ", seed_event.id, "GA", 3, Decimal("60.00"))

    assert quote.valid is True
    assert quote.discount_id == seed_discount.id
    assert quote.discount_amount == Decimal("6.00")
    assert await _usage(test_db, seed_discount.id) == 0


async def test_validate_cart_uses_every_line(validator, seed_event, seed_discount):
    quote = await validator.validate_cart(
        "SAVE10", seed_event.id, [("GA", 2), ("VIP", 1)], Decimal("90.00"),
    )
    assert quote.discount_amount == Decimal("9.00")


async def test_unknown_code_is_invalid(validator, seed_event):
    with pytest.raises(InvalidDiscountCodeError):
        await validator.validate("NOPE", seed_event.id, "GA", 1, Decimal("20.00"))


async def test_unknown_event_is_not_found(validator, seed_discount):
    with pytest.raises(NotFoundError):
        await validator.validate("SAVE10", uuid.uuid4(), "GA", 1, Decimal("20.00"))


async def test_wrong_ticket_type_rejected(validator, seed_event, seed_discount):
    with pytest.raises(WrongTicketTypeError):
        await validator.validate("SAVE10", seed_event.id, "BALCONY", 1, Decimal("20.00"))


async def test_expired_code_rejected(test_db, seed_event, seed_discount):
    def clock():
        return datetime.now(timezone.utc) + timedelta(days=30)

    seed_discount.end_date = datetime.now(timezone.utc) + timedelta(days=1)
    await test_db.commit()

    with pytest.raises(DiscountExpiredError):
        await DiscountValidator(test_db, clock=clock).validate(
            "SAVE10", seed_event.id, "GA", 1, Decimal("20.00"),
        )


async def test_apply_increments_usage(validator, seed_discount, test_db):
    await validator.apply(seed_discount.id)
    await validator.apply(seed_discount.id)

    assert await _usage(test_db, seed_discount.id) == 2


async def test_apply_refuses_past_limit(validator, seed_event, seed_discount, test_db):
    seed_discount.usage_limit = 1
    await test_db.commit()

    await validator.apply(seed_discount.id)
    with pytest.raises(DiscountLimitReachedError):
        await validator.apply(seed_discount.id)

    assert await _usage(test_db, seed_discount.id) == 1
    with pytest.raises(DiscountLimitReachedError):
        await validator.validate("SAVE10", seed_event.id, "GA", 1, Decimal("20.00"))


async def test_apply_unknown_discount_not_found(validator, seed_event):
    with pytest.raises(NotFoundError):
        await validator.apply(uuid.uuid4())
