"""Settlement Coordinator — cart -> pending order -> processor payment -> capture -> paid | failed.

Invariants:
    - Order creation reserves inventory but never consumes discount usage
    - total_amount = subtotal - discount_amount, discount clamped to the subtotal
    - The order is claimed (payment_status=capture_unknown) and committed before the
      processor capture call; an interrupted capture leaves an explicit reconcile marker
    - Capture is idempotent by external payment id: one Payment, one inventory commit
    - Paid finalization is one transaction: order, holds, payment, tickets, discount usage
    - A refused finalization is compensated: capture refunded, holds and tickets released
    - Timeouts and unavailability leave capture_unknown; nothing is retried here
    - Paid orders never cancel; the refund workflow is the only way out

Design Decisions:
    - Conditional UPDATEs on orders.payment_status serialize competing captures and
      cancels without in-process locks
    - Unique constraints on payments back up the conditional update against double finalization
    - Ids are copied to locals before any rollback: rolled-back instances are expired
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import NoReturn
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.config import Settings, get_settings
from boxoffice.core.boundary_protocols import CaptureOutcome, PaymentGateway
from boxoffice.core.domain_types import (
    Actor,
    CaptureStatus,
    EventStatus,
    HoldStatus,
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
    TicketPaymentStatus,
)
from boxoffice.core.errors import (
    BoxOfficeError,
    ConflictError,
    EmptyCartError,
    ErrorContext,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from boxoffice.core.money import ZERO, PricedLine, payable_total, subtotal, to_cents
from boxoffice.core.order_rules import (
    CaptureDecision,
    check_can_cancel,
    check_can_initiate_payment,
    decide_capture,
    ensure_owner,
)
from boxoffice.models.event import Event, TicketType
from boxoffice.models.order import Order
from boxoffice.models.payment import Payment
from boxoffice.models.ticket import Ticket
from boxoffice.schemas.cart import CartCreate
from boxoffice.schemas.order import OrderSnapshot
from boxoffice.services.discount_validator import DiscountValidator
from boxoffice.services.inventory_ledger import InventoryLedger
from boxoffice.services.notifications import LoggingNotifier, Notifier, notify_safely

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    order: Order
    payment: Payment | None = None
    replayed: bool = False


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _order_number() -> str:
    return f"BO-{_now():%Y%m%d}-{secrets.token_hex(4).upper()}"


class SettlementCoordinator:
    """Orchestrates the order lifecycle across ledger, discounts and the gateway."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings or get_settings()
        self.ledger = InventoryLedger(db)
        self.discounts = DiscountValidator(db, clock=clock)

    # ─── Create ─────────────────────────────────────────────────

    async def create_order(self, actor: Actor, cart: CartCreate) -> Order:
        """Price the cart, quote the discount, reserve every line, persist a pending order."""
        if not cart.lines:
            raise EmptyCartError()
        event = await self._open_event(cart.event_id)
        ctx = ErrorContext(event_id=str(event.id))

        priced: list[tuple[TicketType, PricedLine]] = []
        for line in cart.lines:
            if line.quantity > self.settings.max_tickets_per_line:
                raise ValidationError(
                    f"At most {self.settings.max_tickets_per_line} tickets per type per order",
                    field="quantity", context=ctx,
                )
            row = await self.ledger.get_ticket_type(event.id, line.ticket_type)
            priced.append((row, PricedLine(row.type, to_cents(row.price), line.quantity)))
        lines = [line for _, line in priced]
        subtotal_amount = subtotal(lines)

        discount_id, discount_amount = None, ZERO
        if cart.discount_code:
            quote = await self.discounts.validate_cart(
                cart.discount_code, event.id,
                [(line.ticket_type, line.quantity) for line in lines],
                subtotal_amount,
            )
            discount_id, discount_amount = quote.discount_id, quote.discount_amount

        order = Order(
            order_number=_order_number(),
            user_id=actor.user_id,
            event_id=event.id,
            subtotal_amount=subtotal_amount,
            discount_id=discount_id,
            discount_amount=discount_amount,
            total_amount=payable_total(subtotal_amount, discount_amount),
            currency=self.settings.currency,
            payment_status=OrderPaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            tickets=[
                Ticket(
                    event_id=event.id,
                    ticket_type_id=row.id,
                    ticket_type=line.ticket_type,
                    position=position,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    payment_status=TicketPaymentStatus.PENDING.value,
                )
                for position, (row, line) in enumerate(priced)
            ],
            holds=[],
        )
        self.db.add(order)
        try:
            await self.db.flush()
            for _, line in priced:
                hold = await self.ledger.reserve(
                    event.id, line.ticket_type, line.quantity, order_id=order.id,
                )
                order.holds.append(hold)
            await self.db.commit()
        except BoxOfficeError:
            await self.db.rollback()
            raise
        logger.info(
            f"Order {order.order_number} created (total {order.total_amount})",
            extra={"order_id": str(order.id), "event_id": str(event.id)},
        )
        return order

    # ─── Initiate payment ───────────────────────────────────────

    async def initiate_payment(
        self,
        actor: Actor,
        order_id: UUID,
        return_url: str | None = None,
        cancel_url: str | None = None,
    ) -> Order:
        """Create the processor order; repeat calls return the stored reference."""
        order = await self._get_order(order_id)
        ensure_owner(actor, order.user_id, "order")
        ctx = ErrorContext(order_id=str(order.id))
        payment_status = OrderPaymentStatus(order.payment_status)
        status = OrderStatus(order.status)
        if (
            order.external_payment_id
            and payment_status == OrderPaymentStatus.PENDING
            and status == OrderStatus.PENDING
        ):
            return order
        check_can_initiate_payment(payment_status, status, order.total_amount, ctx)

        created = await self.gateway.create_payment(
            str(order.id),
            order.total_amount,
            {
                "return_url": return_url or self.settings.default_return_url,
                "cancel_url": cancel_url or self.settings.default_cancel_url,
                "description": f"Event tickets - order {order.order_number}",
            },
        )
        order.external_payment_id = created.external_id
        order.approval_url = created.approval_url
        order.updated_at = _now()
        await self.db.commit()
        logger.info(
            "Payment initiated",
            extra={"order_id": str(order.id), "external_id": created.external_id},
        )
        return order

    # ─── Capture ────────────────────────────────────────────────

    async def capture_payment(
        self, actor: Actor, order_id: UUID, external_id: str,
    ) -> CaptureResult:
        """Capture and settle; safe to call again with the same external id."""
        order = await self._get_order(order_id)
        ensure_owner(actor, order.user_id, "order")
        ctx = ErrorContext(order_id=str(order_id), external_id=external_id)
        if order.external_payment_id is None:
            raise InvalidTransitionError(
                "Payment has not been initiated for this order", context=ctx,
            )
        if order.external_payment_id != external_id:
            raise ValidationError(
                "Payment reference does not belong to this order",
                field="external_payment_id", context=ctx,
            )

        existing = await self._payment_by_external_id(external_id)
        if existing is not None:
            logger.info(
                "Capture replayed from stored payment",
                extra={"order_id": str(order_id), "external_id": external_id},
            )
            return CaptureResult(order, existing, replayed=True)

        decision = decide_capture(
            OrderPaymentStatus(order.payment_status), OrderStatus(order.status), ctx,
        )
        if decision == CaptureDecision.ALREADY_PAID:
            return await self._replay(order_id, external_id)

        await self._claim(order_id, ctx)
        try:
            outcome = await self.gateway.capture_payment(external_id)
        except (GatewayTimeoutError, GatewayUnavailableError) as e:
            logger.warning(
                f"Capture outcome unknown: {e.message}",
                extra={
                    "order_id": str(order_id), "external_id": external_id,
                    "error_code": e.code,
                },
            )
            raise
        except GatewayError:
            await self._release_claim(order_id)
            raise

        if outcome.status == CaptureStatus.COMPLETED:
            return await self._finalize_paid(order_id, outcome, ctx)
        if outcome.status == CaptureStatus.FAILED:
            provider_status = (outcome.provider_status or "failed").lower()
            return await self._finalize_failed(
                order_id, external_id, f"Payment {provider_status} by processor",
            )
        logger.info(
            "Capture pending at processor; order awaits reconciliation",
            extra={"order_id": str(order_id), "external_id": external_id},
        )
        return CaptureResult(await self._get_order(order_id))

    async def _claim(self, order_id: UUID, ctx: ErrorContext) -> None:
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status == OrderStatus.PENDING.value)
            .where(Order.payment_status.in_([
                OrderPaymentStatus.PENDING.value,
                OrderPaymentStatus.CAPTURE_UNKNOWN.value,
            ]))
            .values(
                payment_status=OrderPaymentStatus.CAPTURE_UNKNOWN.value,
                updated_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidTransitionError("Order is no longer awaiting capture", context=ctx)
        await self.db.commit()

    async def _release_claim(self, order_id: UUID) -> None:
        await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.payment_status == OrderPaymentStatus.CAPTURE_UNKNOWN.value)
            .values(payment_status=OrderPaymentStatus.PENDING.value, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _finalize_paid(
        self, order_id: UUID, outcome: CaptureOutcome, ctx: ErrorContext,
    ) -> CaptureResult:
        now = _now()
        try:
            moved = await self.db.execute(
                update(Order)
                .where(Order.id == order_id)
                .where(Order.payment_status == OrderPaymentStatus.CAPTURE_UNKNOWN.value)
                .values(
                    payment_status=OrderPaymentStatus.PAID.value,
                    status=OrderStatus.COMPLETED.value,
                    paid_at=now,
                    updated_at=now,
                    failure_reason=None,
                )
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount != 1:
                await self.db.rollback()
                return await self._replay(order_id, outcome.external_id)

            order = await self._get_order(order_id)
            for hold in order.holds:
                await self.ledger.commit(hold)
            for ticket in order.tickets:
                ticket.payment_status = TicketPaymentStatus.PAID.value
            payment = Payment(
                order_id=order.id,
                user_id=order.user_id,
                amount=order.total_amount,
                currency=order.currency,
                payment_method=order.payment_method,
                payment_status=PaymentStatus.COMPLETED.value,
                transaction_id=outcome.capture_id or outcome.external_id,
                external_order_id=outcome.external_id,
                capture_id=outcome.capture_id,
                payer_id=outcome.payer_ref,
                provider_status=outcome.provider_status,
                payment_details=outcome.raw or None,
            )
            self.db.add(payment)
            if order.discount_id is not None:
                await self.discounts.apply(order.discount_id)
            await self.db.commit()
        except ConflictError as e:
            await self.db.rollback()
            await self._compensate(order_id, outcome, e)
        except IntegrityError:
            await self.db.rollback()
            logger.info(
                "Capture already recorded by a concurrent finalization",
                extra={"order_id": str(order_id), "external_id": outcome.external_id},
            )
            return await self._replay(order_id, outcome.external_id)

        order = await self._get_order(order_id)
        logger.info(
            f"Order {order.order_number} paid",
            extra={"order_id": str(order_id), "external_id": outcome.external_id},
        )
        snapshot = OrderSnapshot.from_order(order, payment)
        await notify_safely(
            lambda: self.notifier.order_paid(snapshot), "order_paid",
            order_id=str(order_id),
        )
        return CaptureResult(order, payment)

    async def _compensate(
        self, order_id: UUID, outcome: CaptureOutcome, error: ConflictError,
    ) -> NoReturn:
        """Undo a capture that can no longer be fulfilled, then surface the conflict."""
        logger.error(
            f"Paid finalization refused: {error.message}; compensating",
            extra={"order_id": str(order_id), "error_code": error.code},
        )
        order = await self._get_order(order_id)
        refunded = False
        if outcome.capture_id:
            try:
                await self.gateway.refund_capture(
                    outcome.capture_id, order.total_amount,
                    note="Order could not be fulfilled",
                )
                refunded = True
            except GatewayError as gw:
                logger.critical(
                    f"Compensating refund failed: {gw.message}",
                    extra={
                        "order_id": str(order_id), "external_id": outcome.capture_id,
                        "error_code": gw.code,
                    },
                )
        else:
            logger.critical(
                "Captured payment carries no capture id to refund",
                extra={"order_id": str(order_id), "external_id": outcome.external_id},
            )
        reason = error.message if refunded else f"{error.message} (refund needs manual follow-up)"
        await self._mark_failed(order_id, reason)
        raise error

    async def _finalize_failed(
        self, order_id: UUID, external_id: str, reason: str,
    ) -> CaptureResult:
        order = await self._mark_failed(order_id, reason)
        if order is None:
            return await self._replay(order_id, external_id)
        return CaptureResult(order)

    async def _mark_failed(self, order_id: UUID, reason: str) -> Order | None:
        """capture_unknown -> failed, releasing holds and tickets. None if the order moved on."""
        moved = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.payment_status == OrderPaymentStatus.CAPTURE_UNKNOWN.value)
            .values(
                payment_status=OrderPaymentStatus.FAILED.value,
                failure_reason=reason,
                updated_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if moved.rowcount != 1:
            await self.db.rollback()
            return None
        order = await self._get_order(order_id)
        await self._release_inventory(order)
        await self.db.commit()
        logger.warning(
            f"Order {order.order_number} payment failed: {reason}",
            extra={"order_id": str(order_id)},
        )
        snapshot = OrderSnapshot.from_order(order)
        await notify_safely(
            lambda: self.notifier.order_payment_failed(snapshot), "order_payment_failed",
            order_id=str(order_id),
        )
        return order

    async def _replay(self, order_id: UUID, external_id: str) -> CaptureResult:
        order = await self._get_order(order_id)
        payment = await self._payment_by_external_id(external_id)
        return CaptureResult(order, payment, replayed=True)

    # ─── Cancel ─────────────────────────────────────────────────

    async def cancel_order(self, actor: Actor, order_id: UUID) -> Order:
        """Release holds and tickets of an unpaid order; no-op when already cancelled."""
        order = await self._get_order(order_id)
        ensure_owner(actor, order.user_id, "order")
        ctx = ErrorContext(order_id=str(order_id))
        if check_can_cancel(
            OrderPaymentStatus(order.payment_status), OrderStatus(order.status), ctx,
        ):
            return order

        moved = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status == OrderStatus.PENDING.value)
            .where(Order.payment_status.in_([
                OrderPaymentStatus.PENDING.value, OrderPaymentStatus.FAILED.value,
            ]))
            .values(status=OrderStatus.CANCELLED.value, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        if moved.rowcount != 1:
            await self.db.rollback()
            order = await self._get_order(order_id)
            if check_can_cancel(
                OrderPaymentStatus(order.payment_status), OrderStatus(order.status), ctx,
            ):
                return order
            raise InvalidTransitionError("Order changed while cancelling", context=ctx)

        order = await self._get_order(order_id)
        await self._release_inventory(order)
        await self.db.commit()
        logger.info(
            f"Order {order.order_number} cancelled", extra={"order_id": str(order_id)},
        )
        return order

    # ─── Reads ──────────────────────────────────────────────────

    async def get_order(self, actor: Actor, order_id: UUID) -> Order:
        order = await self._get_order(order_id)
        ensure_owner(actor, order.user_id, "order")
        return order

    async def list_orders(
        self,
        actor: Actor,
        limit: int = 20,
        offset: int = 0,
        status: OrderStatus | None = None,
    ) -> list[Order]:
        """Own orders, newest first; admins see everyone's."""
        query = select(Order).order_by(Order.created_at.desc())
        if not actor.is_admin:
            query = query.where(Order.user_id == actor.user_id)
        if status is not None:
            query = query.where(Order.status == status.value)
        result = await self.db.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def list_payments(
        self, actor: Actor, limit: int = 20, offset: int = 0,
    ) -> list[Payment]:
        """Own payment records, newest first; admins see everyone's."""
        query = select(Payment).order_by(Payment.created_at.desc())
        if not actor.is_admin:
            query = query.where(Payment.user_id == actor.user_id)
        result = await self.db.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def get_receipt(self, actor: Actor, order_id: UUID) -> OrderSnapshot:
        order = await self.get_order(actor, order_id)
        if order.payment_status not in (
            OrderPaymentStatus.PAID.value, OrderPaymentStatus.REFUNDED.value,
        ):
            raise ValidationError(
                "Receipt is only available for paid orders",
                context=ErrorContext(order_id=str(order_id)),
            )
        payment = await self.db.scalar(select(Payment).where(Payment.order_id == order.id))
        return OrderSnapshot.from_order(order, payment)

    # ─── Helpers ────────────────────────────────────────────────

    async def _open_event(self, event_id: UUID) -> Event:
        event = await self.db.get(Event, event_id)
        if event is None:
            raise NotFoundError("Event", str(event_id))
        if event.event_status != EventStatus.APPROVED.value or not event.booking_available:
            raise ValidationError(
                "Event is not open for booking", field="event_id",
                context=ErrorContext(event_id=str(event_id)),
            )
        return event

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

    async def _payment_by_external_id(self, external_id: str) -> Payment | None:
        return await self.db.scalar(
            select(Payment).where(Payment.external_order_id == external_id),
        )

    async def _release_inventory(self, order: Order) -> None:
        for hold in order.holds:
            if hold.status == HoldStatus.HELD.value:
                await self.ledger.release(hold)
        for ticket in order.tickets:
            if ticket.payment_status == TicketPaymentStatus.PENDING.value:
                ticket.payment_status = TicketPaymentStatus.RELEASED.value
