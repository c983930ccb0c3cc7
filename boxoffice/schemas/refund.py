"""Refund Schemas — refund request payloads and responses."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from boxoffice.core.domain_types import RefundStatus


class RefundCreate(BaseModel):
    order_id: UUID
    reason: str = Field(max_length=2000)


class RefundDecision(BaseModel):
    """Reviewer note; restock overrides the configured default on approval."""
    note: str | None = Field(None, max_length=2000)
    restock: bool | None = None


class RefundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    user_id: UUID
    amount: Decimal
    reason: str
    status: RefundStatus
    reviewer_id: UUID | None = None
    review_note: str | None = None
    external_refund_id: str | None = None
    restocked: bool | None = None
    created_at: datetime
    decided_at: datetime | None = None
