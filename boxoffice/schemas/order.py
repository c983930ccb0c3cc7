"""Order Schemas — order responses, payment requests, and the frozen OrderSnapshot.

Invariants:
    - Amounts serialized as Decimal (2 dp), never floats
    - OrderSnapshot is immutable; rendering and notification collaborators only read it
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from boxoffice.core.domain_types import (
    OrderPaymentStatus, OrderStatus, TicketPaymentStatus,
)
from boxoffice.core.money import to_cents


class TicketLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_type: str
    quantity: int
    unit_price: Decimal
    payment_status: TicketPaymentStatus

    @computed_field
    @property
    def line_total(self) -> Decimal:
        return to_cents(self.unit_price * self.quantity)


class OrderResponse(BaseModel):
    """Order as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    user_id: UUID
    event_id: UUID
    subtotal_amount: Decimal
    discount_id: UUID | None = None
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    payment_method: str
    payment_status: OrderPaymentStatus
    status: OrderStatus
    external_payment_id: str | None = None
    approval_url: str | None = None
    failure_reason: str | None = None
    created_at: datetime
    paid_at: datetime | None = None
    tickets: list[TicketLineResponse] = []


class OrderList(BaseModel):
    orders: list[OrderResponse]
    limit: int
    offset: int


class PaymentInitiateRequest(BaseModel):
    """Return/cancel URLs the processor redirects the buyer to."""
    return_url: str | None = Field(None, max_length=2000)
    cancel_url: str | None = Field(None, max_length=2000)


class PaymentInitiateResponse(BaseModel):
    order_id: UUID
    external_payment_id: str
    approval_url: str | None = None
    total_amount: Decimal
    currency: str


class CaptureRequest(BaseModel):
    external_payment_id: str = Field(min_length=1, max_length=64)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    amount: Decimal
    currency: str
    payment_method: str
    payment_status: str
    transaction_id: str
    external_order_id: str
    payer_id: str | None = None
    created_at: datetime


class CaptureResponse(BaseModel):
    order: OrderResponse
    payment: PaymentResponse | None = None
    replayed: bool = False


# ─── Snapshot for rendering / notification collaborators ─────────

class TicketSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticket_type: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    payment_status: str


class PaymentSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    external_order_id: str
    payer_id: str | None
    amount: Decimal
    payment_method: str
    payment_status: str
    captured_at: datetime


class OrderSnapshot(BaseModel):
    """Frozen view of a settled order."""
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    user_id: UUID
    event_id: UUID
    subtotal_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    payment_status: str
    status: str
    paid_at: datetime | None
    failure_reason: str | None = None
    tickets: tuple[TicketSnapshot, ...]
    payment: PaymentSnapshot | None = None

    @classmethod
    def from_order(cls, order, payment=None) -> "OrderSnapshot":
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            event_id=order.event_id,
            subtotal_amount=order.subtotal_amount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            currency=order.currency,
            payment_status=order.payment_status,
            status=order.status,
            paid_at=order.paid_at,
            failure_reason=order.failure_reason,
            tickets=tuple(
                TicketSnapshot(
                    ticket_type=t.ticket_type,
                    quantity=t.quantity,
                    unit_price=t.unit_price,
                    line_total=to_cents(t.unit_price * t.quantity),
                    payment_status=t.payment_status,
                )
                for t in order.tickets
            ),
            payment=PaymentSnapshot(
                transaction_id=payment.transaction_id,
                external_order_id=payment.external_order_id,
                payer_id=payment.payer_id,
                amount=payment.amount,
                payment_method=payment.payment_method,
                payment_status=payment.payment_status,
                captured_at=payment.created_at,
            ) if payment is not None else None,
        )
