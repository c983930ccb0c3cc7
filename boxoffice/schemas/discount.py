"""Discount Schemas — tagged discount variants, admin payloads, and validation quotes.

Invariants:
    - Discount kind is a discriminated union on discount_type (percentage | fixed)
    - Percentage value in (0, 100]; fixed value > 0
    - code, usage_count and created_by are not updatable (DiscountUpdate forbids extras)
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from boxoffice.core.domain_types import DiscountScope, DiscountType
from boxoffice.schemas.cart import CartLine


class PercentageRule(BaseModel):
    discount_type: Literal["percentage"]
    discount_value: Decimal = Field(gt=0, le=100, decimal_places=2)


class FixedRule(BaseModel):
    discount_type: Literal["fixed"]
    discount_value: Decimal = Field(gt=0, decimal_places=2)


DiscountRuleIn = Annotated[PercentageRule | FixedRule, Field(discriminator="discount_type")]


class DiscountCreate(BaseModel):
    """Organizer discount definition."""
    model_config = ConfigDict(extra="forbid")

    code: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    description: str | None = Field(None, max_length=500)
    rule: DiscountRuleIn
    scope: DiscountScope = DiscountScope.CART
    minimum_purchase_amount: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int | None = Field(None, ge=1)
    is_active: bool = True
    event_ids: list[UUID] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_dates(self) -> "DiscountCreate":
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self


class DiscountUpdate(BaseModel):
    """Partial update; unset fields keep their value."""
    model_config = ConfigDict(extra="forbid")

    description: str | None = Field(None, max_length=500)
    rule: DiscountRuleIn | None = None
    scope: DiscountScope | None = None
    minimum_purchase_amount: Decimal | None = Field(None, ge=0, decimal_places=2)
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int | None = Field(None, ge=1)
    is_active: bool | None = None
    event_ids: list[UUID] | None = None


class DiscountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal
    scope: DiscountScope
    minimum_purchase_amount: Decimal
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int | None = None
    usage_count: int
    is_active: bool
    event_ids: list[UUID] = []
    created_by: UUID
    created_at: datetime

    @classmethod
    def from_model(cls, discount) -> "DiscountResponse":
        response = cls.model_validate(discount)
        return response.model_copy(
            update={"event_ids": [event.id for event in discount.events]},
        )


class DiscountStats(BaseModel):
    discount_id: UUID
    code: str
    usage_count: int
    usage_limit: int | None
    usage_percentage: Decimal | None
    remaining_uses: int | None
    is_expired: bool
    is_maxed_out: bool
    is_effectively_active: bool


class DiscountValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    event_id: UUID
    lines: list[CartLine] = Field(min_length=1, max_length=20)


class DiscountQuoteResponse(BaseModel):
    valid: bool
    discount_id: UUID
    discount_type: DiscountType
    discount_value: Decimal
    scope: DiscountScope
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
