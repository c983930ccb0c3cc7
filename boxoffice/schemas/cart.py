"""Cart Schemas — the explicit shape of a purchase request.

Invariants:
    - A cart targets exactly one event
    - Each line names a ticket type once; quantity >= 1
    - Discount code is optional and normalized later by the validator
"""

from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class CartLine(BaseModel):
    """One ticket type and how many of it."""
    ticket_type: str = Field(min_length=1, max_length=50)
    quantity: int = Field(ge=1)

    @field_validator("ticket_type")
    @classmethod
    def strip_ticket_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("ticket_type cannot be empty or whitespace")
        return v


class CartCreate(BaseModel):
    """Cart submission — becomes a pending order."""
    event_id: UUID
    lines: list[CartLine] = Field(default_factory=list, max_length=20)
    discount_code: str | None = Field(None, max_length=50)

    @model_validator(mode="after")
    def check_unique_ticket_types(self) -> "CartCreate":
        seen = set()
        for line in self.lines:
            if line.ticket_type in seen:
                raise ValueError(
                    f"ticket type '{line.ticket_type}' appears more than once",
                )
            seen.add(line.ticket_type)
        return self

    @field_validator("discount_code")
    @classmethod
    def blank_code_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v
