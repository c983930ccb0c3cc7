"""Request Schemas — cart and discount payload validation.

Tests cover:
    - CartLine strips ticket types and requires quantity >= 1
    - CartCreate rejects duplicate ticket types and blanks the discount code
    - DiscountCreate discriminates percentage | fixed and upper-cases the code
    - DiscountUpdate forbids immutable fields
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from boxoffice.schemas.cart import CartCreate, CartLine
from boxoffice.schemas.discount import (
    DiscountCreate, DiscountUpdate, FixedRule, PercentageRule,
)


# ─── Cart ───────────────────────────────────────────────────────

def test_cart_line_strips_ticket_type():
    assert CartLine(ticket_type="  GA ", quantity=1).ticket_type == "GA"


def test_cart_line_rejects_zero_quantity():
    with pytest.raises(ValidationError):
        CartLine(ticket_type="GA", quantity=0)


def test_cart_line_rejects_whitespace_type():
    with pytest.raises(ValidationError):
        CartLine(ticket_type="   ", quantity=1)


def test_cart_rejects_duplicate_ticket_types():
    with pytest.raises(ValidationError) as exc:
        CartCreate(
            event_id=uuid.uuid4(),
            lines=[
                {"ticket_type": "GA", "quantity": 1},
                {"ticket_type": "GA", "quantity": 2},
            ],
        )
    assert "more than once" in str(exc.value)


def test_cart_blank_discount_code_becomes_none():
    cart = CartCreate(event_id=uuid.uuid4(), discount_code="  ")
    assert cart.discount_code is None
    assert cart.lines == []


# ─── Discounts ──────────────────────────────────────────────────

def test_discount_create_discriminates_rule():
    body = DiscountCreate(
        code="summer-10",
        rule={"discount_type": "percentage", "discount_value": "10"},
    )
    assert isinstance(body.rule, PercentageRule)
    assert body.code == "SUMMER-10"

    fixed = DiscountCreate(code="FIVE", rule={"discount_type": "fixed", "discount_value": "5"})
    assert isinstance(fixed.rule, FixedRule)
    assert fixed.rule.discount_value == Decimal("5")


def test_discount_create_rejects_percentage_over_100():
    with pytest.raises(ValidationError):
        DiscountCreate(
            code="TOOMUCH", rule={"discount_type": "percentage", "discount_value": "150"},
        )


def test_discount_create_rejects_unknown_kind():
    with pytest.raises(ValidationError):
        DiscountCreate(code="BOGO", rule={"discount_type": "bogo", "discount_value": "1"})


def test_discount_create_rejects_inverted_dates():
    with pytest.raises(ValidationError):
        DiscountCreate(
            code="DATES",
            rule={"discount_type": "fixed", "discount_value": "1"},
            start_date=datetime(2026, 2, 1, tzinfo=timezone.utc),
            end_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )


def test_discount_update_forbids_code_and_usage_count():
    with pytest.raises(ValidationError):
        DiscountUpdate(code="NEWCODE")
    with pytest.raises(ValidationError):
        DiscountUpdate(usage_count=0)
