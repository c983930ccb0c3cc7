"""Order & Refund Transition Guards — pure checks, no IO.

Invariants:
    - A paid order never leaves `paid` except through the refund workflow
    - Capture may start from `pending` or resume from `capture_unknown`
    - Cancel is refused while a capture outcome is unknown
    - One refund request per order, only for paid orders
    - Refund decisions happen once: pending -> approved | rejected
    - Approval claims the request (pending -> approving) before the processor refund;
      a claimed request cannot be rejected
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from boxoffice.core.domain_types import (
    Actor,
    OrderPaymentStatus,
    OrderStatus,
    RefundStatus,
    Role,
)
from boxoffice.core.errors import (
    AuthorizationError,
    CaptureInProgressError,
    DuplicateRefundRequestError,
    ErrorContext,
    InvalidTransitionError,
    ValidationError,
)


class CaptureDecision(str, Enum):
    PROCEED = "proceed"
    ALREADY_PAID = "already_paid"


def ensure_owner(actor: Actor, owner_id: UUID, resource: str) -> None:
    """Owner or admin may touch the resource."""
    if actor.is_admin or actor.user_id == owner_id:
        return
    raise AuthorizationError(f"Not authorized to access this {resource}")


def ensure_role(actor: Actor, *roles: Role) -> None:
    if actor.role not in roles:
        raise AuthorizationError(
            f"Requires role: {', '.join(r.value for r in roles)}",
        )


def check_can_initiate_payment(
    payment_status: OrderPaymentStatus,
    status: OrderStatus,
    total_amount: Decimal,
    ctx: ErrorContext | None = None,
) -> None:
    if status != OrderStatus.PENDING or payment_status != OrderPaymentStatus.PENDING:
        raise InvalidTransitionError(
            f"Order is not awaiting payment (status={status.value}, "
            f"payment_status={payment_status.value})",
            context=ctx,
        )
    if total_amount <= 0:
        raise ValidationError("Invalid order amount", field="total_amount", context=ctx)


def decide_capture(
    payment_status: OrderPaymentStatus,
    status: OrderStatus,
    ctx: ErrorContext | None = None,
) -> CaptureDecision:
    if payment_status == OrderPaymentStatus.PAID:
        return CaptureDecision.ALREADY_PAID
    if status == OrderStatus.CANCELLED:
        raise InvalidTransitionError("Cancelled orders cannot be captured", context=ctx)
    if payment_status in (OrderPaymentStatus.PENDING, OrderPaymentStatus.CAPTURE_UNKNOWN):
        return CaptureDecision.PROCEED
    raise InvalidTransitionError(
        f"Order payment cannot be captured from '{payment_status.value}'",
        context=ctx,
    )


def check_can_cancel(
    payment_status: OrderPaymentStatus,
    status: OrderStatus,
    ctx: ErrorContext | None = None,
) -> bool:
    """True when the order is already cancelled (no-op)."""
    if payment_status in (OrderPaymentStatus.PAID, OrderPaymentStatus.REFUNDED):
        raise InvalidTransitionError(
            "Paid orders cannot be cancelled directly. Please request a refund.",
            context=ctx,
        )
    if payment_status == OrderPaymentStatus.CAPTURE_UNKNOWN:
        raise CaptureInProgressError(context=ctx)
    return status == OrderStatus.CANCELLED


def check_can_request_refund(
    payment_status: OrderPaymentStatus,
    existing_status: RefundStatus | None,
    reason: str | None,
    ctx: ErrorContext | None = None,
) -> None:
    if not (reason or "").strip():
        raise ValidationError("Refund reason is required", field="reason", context=ctx)
    if payment_status != OrderPaymentStatus.PAID:
        raise ValidationError("Only paid orders can be refunded", context=ctx)
    if existing_status is not None:
        raise DuplicateRefundRequestError(existing_status.value, context=ctx)


def check_can_decide_refund(status: RefundStatus, ctx: ErrorContext | None = None) -> None:
    """Reject (or a fresh approval) needs a pending request."""
    if status == RefundStatus.APPROVING:
        raise InvalidTransitionError("Refund request is being approved", context=ctx)
    if status != RefundStatus.PENDING:
        raise InvalidTransitionError(
            f"Refund request already {status.value}", context=ctx,
        )


def check_can_approve_refund(status: RefundStatus, ctx: ErrorContext | None = None) -> None:
    """Approval starts from pending or resumes an unreconciled approving claim."""
    if status == RefundStatus.APPROVING:
        return
    check_can_decide_refund(status, ctx)
