"""Refund Workflow — ticket-holder requests, administrative approve/reject.

Invariants:
    - One refund request per order (unique order_id), only for paid orders
    - pending -> approving -> approved, or pending -> rejected; decided once
    - Approval claims the request (committed pending -> approving) before the
      processor refund, so no concurrent decision can land while money moves
    - A refused processor refund reverts the claim to pending and changes nothing else;
      a timeout or outage leaves the claim in place (approve again to reconcile)
    - Approval then settles in one transaction: request approved, payment refunded,
      order refunded, tickets refunded, inventory restocked when requested
    - Rejection returns the order to completed

Design Decisions:
    - Mirrors the capture claim in services/settlement.py: the processor call only
      happens while this workflow owns the request
    - The processor refund is keyed by capture and amount (PayPal-Request-Id), so
      resuming an approving claim cannot refund twice
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.config import Settings, get_settings
from boxoffice.core.boundary_protocols import PaymentGateway
from boxoffice.core.domain_types import (
    Actor,
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
    RefundStatus,
    Role,
    TicketPaymentStatus,
)
from boxoffice.core.errors import (
    AuthorizationError,
    DuplicateRefundRequestError,
    ErrorContext,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    InvalidTransitionError,
    InventoryConflictError,
    NotFoundError,
)
from boxoffice.core.order_rules import (
    check_can_approve_refund,
    check_can_decide_refund,
    check_can_request_refund,
    ensure_owner,
    ensure_role,
)
from boxoffice.infrastructure.database import commit_or_conflict
from boxoffice.models.order import Order
from boxoffice.models.payment import Payment
from boxoffice.models.refund_request import RefundRequest
from boxoffice.schemas.refund import RefundResponse
from boxoffice.services.inventory_ledger import InventoryLedger
from boxoffice.services.notifications import LoggingNotifier, Notifier, notify_safely

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RefundWorkflow:
    """Refund request state machine over settled orders."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings or get_settings()
        self.ledger = InventoryLedger(db)

    async def request_refund(
        self, actor: Actor, order_id: UUID, reason: str | None,
    ) -> RefundRequest:
        order = await self._get_order(order_id)
        if order.user_id != actor.user_id:
            raise AuthorizationError("Not authorized to refund this order")
        ctx = ErrorContext(order_id=str(order_id))
        existing = await self.db.scalar(
            select(RefundRequest.status).where(RefundRequest.order_id == order_id),
        )
        check_can_request_refund(
            OrderPaymentStatus(order.payment_status),
            RefundStatus(existing) if existing else None,
            reason,
            ctx,
        )

        refund = RefundRequest(
            order_id=order.id,
            user_id=actor.user_id,
            amount=order.total_amount,
            reason=reason.strip(),
            status=RefundStatus.PENDING.value,
        )
        self.db.add(refund)
        order.status = OrderStatus.REFUND_REQUESTED.value
        order.updated_at = _now()
        await commit_or_conflict(self.db, DuplicateRefundRequestError(context=ctx))
        logger.info(
            "Refund requested",
            extra={"order_id": str(order_id), "refund_id": str(refund.id)},
        )
        return refund

    async def approve(
        self,
        reviewer: Actor,
        refund_id: UUID,
        note: str | None = None,
        restock: bool | None = None,
    ) -> RefundRequest:
        """Claim, refund the capture, then settle order, payment, tickets and inventory."""
        ensure_role(reviewer, Role.ADMIN)
        refund = await self._get_refund(refund_id)
        ctx = ErrorContext(refund_id=str(refund_id), order_id=str(refund.order_id))
        check_can_approve_refund(RefundStatus(refund.status), ctx)
        payment = await self.db.scalar(
            select(Payment).where(Payment.order_id == refund.order_id),
        )
        if payment is None:
            raise InvalidTransitionError("Order has no captured payment to refund", context=ctx)
        if not payment.capture_id:
            raise InvalidTransitionError("Payment has no capture id to refund", context=ctx)
        if restock is None:
            restock = self.settings.restock_on_refund
        order_id = refund.order_id
        amount = refund.amount
        capture_id = payment.capture_id

        await self._claim(refund_id, reviewer, ctx)
        try:
            outcome = await self.gateway.refund_capture(capture_id, amount, note=note)
        except (GatewayTimeoutError, GatewayUnavailableError) as e:
            logger.warning(
                f"Refund outcome unknown: {e.message}",
                extra={
                    "refund_id": str(refund_id), "order_id": str(order_id),
                    "error_code": e.code,
                },
            )
            raise
        except GatewayError:
            await self._release_claim(refund_id)
            raise

        now = _now()
        decided = await self.db.execute(
            update(RefundRequest)
            .where(RefundRequest.id == refund_id)
            .where(RefundRequest.status == RefundStatus.APPROVING.value)
            .values(
                status=RefundStatus.APPROVED.value,
                reviewer_id=reviewer.user_id,
                review_note=note,
                external_refund_id=outcome.refund_id,
                restocked=restock,
                decided_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if decided.rowcount != 1:
            # A resumed approval settled the claim first.
            await self.db.rollback()
            refund = await self._get_refund(refund_id)
            if refund.status == RefundStatus.APPROVED.value:
                return refund
            raise InvalidTransitionError("Refund request changed while approving", context=ctx)

        payment = await self.db.scalar(
            select(Payment)
            .where(Payment.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        payment.payment_status = PaymentStatus.REFUNDED.value
        payment.updated_at = now
        order = await self._get_order(order_id)
        order.payment_status = OrderPaymentStatus.REFUNDED.value
        order.status = OrderStatus.REFUNDED.value
        order.updated_at = now
        for ticket in order.tickets:
            ticket.payment_status = TicketPaymentStatus.REFUNDED.value
        if restock:
            await self._restock(order)
        await self.db.commit()
        refund = await self._get_refund(refund_id)

        logger.info(
            f"Refund approved ({amount}, restock={restock})",
            extra={"refund_id": str(refund_id), "order_id": str(order_id)},
        )
        await self._notify(refund)
        return refund

    async def reject(
        self, reviewer: Actor, refund_id: UUID, note: str | None = None,
    ) -> RefundRequest:
        ensure_role(reviewer, Role.ADMIN)
        refund = await self._get_refund(refund_id)
        ctx = ErrorContext(refund_id=str(refund_id), order_id=str(refund.order_id))
        check_can_decide_refund(RefundStatus(refund.status), ctx)
        order_id = refund.order_id

        now = _now()
        decided = await self.db.execute(
            update(RefundRequest)
            .where(RefundRequest.id == refund_id)
            .where(RefundRequest.status == RefundStatus.PENDING.value)
            .values(
                status=RefundStatus.REJECTED.value,
                reviewer_id=reviewer.user_id,
                review_note=note,
                decided_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if decided.rowcount != 1:
            await self.db.rollback()
            current = await self._get_refund(refund_id)
            check_can_decide_refund(RefundStatus(current.status), ctx)
            raise InvalidTransitionError("Refund request already decided", context=ctx)
        order = await self._get_order(order_id)
        if order.status == OrderStatus.REFUND_REQUESTED.value:
            order.status = OrderStatus.COMPLETED.value
            order.updated_at = now
        await self.db.commit()
        refund = await self._get_refund(refund_id)

        logger.info(
            "Refund rejected", extra={"refund_id": str(refund_id), "order_id": str(order_id)},
        )
        await self._notify(refund)
        return refund

    async def list_for_user(self, actor: Actor) -> list[RefundRequest]:
        result = await self.db.execute(
            select(RefundRequest)
            .where(RefundRequest.user_id == actor.user_id)
            .order_by(RefundRequest.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_all(
        self, actor: Actor, status: RefundStatus | None = None,
    ) -> list[RefundRequest]:
        ensure_role(actor, Role.ADMIN)
        query = select(RefundRequest).order_by(RefundRequest.created_at.desc())
        if status is not None:
            query = query.where(RefundRequest.status == status.value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get(self, actor: Actor, refund_id: UUID) -> RefundRequest:
        refund = await self._get_refund(refund_id)
        ensure_owner(actor, refund.user_id, "refund request")
        return refund

    # ─── Helpers ────────────────────────────────────────────────

    async def _claim(self, refund_id: UUID, reviewer: Actor, ctx: ErrorContext) -> None:
        result = await self.db.execute(
            update(RefundRequest)
            .where(RefundRequest.id == refund_id)
            .where(RefundRequest.status.in_([
                RefundStatus.PENDING.value,
                RefundStatus.APPROVING.value,
            ]))
            .values(status=RefundStatus.APPROVING.value, reviewer_id=reviewer.user_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidTransitionError("Refund request already decided", context=ctx)
        await self.db.commit()

    async def _release_claim(self, refund_id: UUID) -> None:
        await self.db.execute(
            update(RefundRequest)
            .where(RefundRequest.id == refund_id)
            .where(RefundRequest.status == RefundStatus.APPROVING.value)
            .values(status=RefundStatus.PENDING.value, reviewer_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _restock(self, order: Order) -> None:
        for ticket in order.tickets:
            try:
                await self.ledger.increase(order.event_id, ticket.ticket_type, ticket.quantity)
            except InventoryConflictError as e:
                # Availability was raised by hand since the sale; leave it as is.
                logger.warning(
                    f"Restock skipped: {e.message}",
                    extra={"order_id": str(order.id), "event_id": str(order.event_id)},
                )

    async def _notify(self, refund: RefundRequest) -> None:
        view = RefundResponse.model_validate(refund)
        await notify_safely(
            lambda: self.notifier.refund_decided(view), "refund_decided",
            refund_id=str(view.id),
        )

    async def _get_order(self, order_id: UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", str(order_id))
        return order

    async def _get_refund(self, refund_id: UUID) -> RefundRequest:
        result = await self.db.execute(
            select(RefundRequest)
            .where(RefundRequest.id == refund_id)
            .execution_options(populate_existing=True)
        )
        refund = result.scalar_one_or_none()
        if refund is None:
            raise NotFoundError("Refund request", str(refund_id))
        return refund
