"""Integration Tests: SettlementCoordinator — order creation, payment initiation, cancel, reads.

Invariants:
    - Order creation reserves (held) but never decrements availability or consumes discounts
    - total = subtotal - discount (3 x 20.00 with 10% -> 54.00)
    - A refused reservation leaves no order and no hold behind
    - Payment initiation is idempotent while the external reference exists
    - Cancel releases holds and tickets; paid orders are refused

Design Decisions:
    - Split from test_settlement_capture.py: capture and compensation paths live there
    - Ids copied to locals before any call that may roll back (rollback expires instances)
"""

import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, select

from boxoffice.core.domain_types import (
    HoldStatus, OrderPaymentStatus, OrderStatus, TicketPaymentStatus,
)
from boxoffice.core.errors import (
    AuthorizationError,
    EmptyCartError,
    InvalidDiscountCodeError,
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
    WrongTicketTypeError,
)
from boxoffice.models.discount import Discount
from boxoffice.models.event import TicketType
from boxoffice.models.inventory_hold import InventoryHold
from boxoffice.models.order import Order
from boxoffice.schemas.cart import CartCreate


def _cart(event_id, quantity=3, code=None, ticket_type="GA") -> CartCreate:
    return CartCreate(
        event_id=event_id,
        lines=[{"ticket_type": ticket_type, "quantity": quantity}],
        discount_code=code,
    )


async def _availability(db, event_id, ticket_type="GA") -> int:
    return await db.scalar(
        select(TicketType.availability)
        .where(TicketType.event_id == event_id)
        .where(TicketType.type == ticket_type),
    )


# ==============================================================================
# Create
# ==============================================================================


async def test_create_order_prices_cart_with_discount(
    coordinator, buyer, seed_event, seed_discount, test_db,
):
    """3 GA at 20.00 with SAVE10 -> total 54.00, discount 6.00."""
    order = await coordinator.create_order(buyer, _cart(seed_event.id, code="save10"))

    assert order.subtotal_amount == Decimal("60.00")
    assert order.discount_amount == Decimal("6.00")
    assert order.total_amount == Decimal("54.00")
    assert order.discount_id == seed_discount.id
    assert order.status == OrderStatus.PENDING.value
    assert order.payment_status == OrderPaymentStatus.PENDING.value
    assert order.order_number.startswith("BO-")
    assert [t.payment_status for t in order.tickets] == [TicketPaymentStatus.PENDING.value]
    assert [h.status for h in order.holds] == [HoldStatus.HELD.value]

    assert await _availability(test_db, seed_event.id) == 100
    usage = await test_db.scalar(
        select(Discount.usage_count).where(Discount.id == seed_discount.id),
    )
    assert usage == 0


async def test_create_order_with_several_lines(coordinator, buyer, seed_event):
    cart = CartCreate(
        event_id=seed_event.id,
        lines=[
            {"ticket_type": "GA", "quantity": 2},
            {"ticket_type": "VIP", "quantity": 1},
        ],
    )
    order = await coordinator.create_order(buyer, cart)

    assert order.total_amount == Decimal("90.00")
    assert [(t.ticket_type, t.position) for t in order.tickets] == [("GA", 0), ("VIP", 1)]
    assert len(order.holds) == 2


async def test_empty_cart_rejected(coordinator, buyer, seed_event):
    with pytest.raises(EmptyCartError):
        await coordinator.create_order(buyer, CartCreate(event_id=seed_event.id))


async def test_unknown_event_not_found(coordinator, buyer, seed_event):
    with pytest.raises(NotFoundError):
        await coordinator.create_order(buyer, _cart(uuid.uuid4()))


async def test_event_closed_for_booking_rejected(coordinator, buyer, seed_event, test_db):
    event_id = seed_event.id
    seed_event.booking_available = False
    await test_db.commit()

    with pytest.raises(ValidationError) as exc:
        await coordinator.create_order(buyer, _cart(event_id))
    assert exc.value.field == "event_id"


async def test_unapproved_event_rejected(coordinator, buyer, seed_event, test_db):
    event_id = seed_event.id
    seed_event.event_status = "pending"
    await test_db.commit()

    with pytest.raises(ValidationError):
        await coordinator.create_order(buyer, _cart(event_id))


async def test_wrong_ticket_type_rejected(coordinator, buyer, seed_event):
    with pytest.raises(WrongTicketTypeError):
        await coordinator.create_order(buyer, _cart(seed_event.id, ticket_type="BALCONY"))


async def test_line_above_per_type_limit_rejected(coordinator, buyer, seed_event):
    with pytest.raises(ValidationError) as exc:
        await coordinator.create_order(buyer, _cart(seed_event.id, quantity=101))
    assert exc.value.field == "quantity"


async def test_out_of_stock_leaves_no_order_or_hold(coordinator, buyer, seed_event, test_db):
    event_id = seed_event.id
    cart = CartCreate(
        event_id=event_id,
        lines=[
            {"ticket_type": "GA", "quantity": 2},
            {"ticket_type": "VIP", "quantity": 11},
        ],
    )

    with pytest.raises(OutOfStockError):
        await coordinator.create_order(buyer, cart)

    assert await test_db.scalar(select(func.count()).select_from(Order)) == 0
    assert await test_db.scalar(select(func.count()).select_from(InventoryHold)) == 0
    assert await _availability(test_db, event_id) == 100


async def test_invalid_discount_code_blocks_order(coordinator, buyer, seed_event, test_db):
    with pytest.raises(InvalidDiscountCodeError):
        await coordinator.create_order(buyer, _cart(seed_event.id, code="NOPE"))
    assert await test_db.scalar(select(func.count()).select_from(Order)) == 0


# ==============================================================================
# Initiate payment
# ==============================================================================


async def test_initiate_payment_stores_reference(coordinator, gateway, buyer, seed_event):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))

    initiated = await coordinator.initiate_payment(
        buyer, order.id, return_url="https://shop.test/ok",
    )

    assert initiated.external_payment_id == f"PAY-{order.id}"
    assert initiated.approval_url.startswith("https://paypal.test/checkoutnow")
    _, (order_id, amount, metadata) = gateway.calls[0]
    assert order_id == str(order.id)
    assert amount == Decimal("60.00")
    assert metadata["return_url"] == "https://shop.test/ok"
    assert metadata["cancel_url"]  # settings default


async def test_initiate_payment_twice_calls_gateway_once(coordinator, gateway, buyer, seed_event):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))

    first = await coordinator.initiate_payment(buyer, order.id)
    second = await coordinator.initiate_payment(buyer, order.id)

    assert first.external_payment_id == second.external_payment_id
    assert gateway.count("create_payment") == 1


async def test_initiate_payment_by_stranger_forbidden(
    coordinator, buyer, other_buyer, seed_event,
):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))

    with pytest.raises(AuthorizationError):
        await coordinator.initiate_payment(other_buyer, order.id)


async def test_zero_total_order_cannot_initiate_payment(
    coordinator, gateway, buyer, organizer, seed_event, test_db,
):
    free = Discount(
        code="COMP", discount_type="fixed", discount_value=Decimal("1000"),
        created_by=organizer.user_id, events=[seed_event],
    )
    test_db.add(free)
    await test_db.commit()

    order = await coordinator.create_order(buyer, _cart(seed_event.id, code="COMP"))
    assert order.total_amount == Decimal("0.00")

    with pytest.raises(ValidationError):
        await coordinator.initiate_payment(buyer, order.id)
    assert gateway.count("create_payment") == 0

    cancelled = await coordinator.cancel_order(buyer, order.id)
    assert cancelled.status == OrderStatus.CANCELLED.value


# ==============================================================================
# Cancel
# ==============================================================================


async def test_cancel_releases_holds_and_tickets(coordinator, buyer, seed_event, test_db):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))

    cancelled = await coordinator.cancel_order(buyer, order.id)

    assert cancelled.status == OrderStatus.CANCELLED.value
    assert [h.status for h in cancelled.holds] == [HoldStatus.RELEASED.value]
    assert [t.payment_status for t in cancelled.tickets] == [TicketPaymentStatus.RELEASED.value]
    assert await _availability(test_db, seed_event.id) == 100


async def test_cancel_twice_is_noop(coordinator, buyer, seed_event):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))

    await coordinator.cancel_order(buyer, order.id)
    again = await coordinator.cancel_order(buyer, order.id)

    assert again.status == OrderStatus.CANCELLED.value


async def test_cancel_paid_order_refused(coordinator, buyer, seed_event):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))
    initiated = await coordinator.initiate_payment(buyer, order.id)
    await coordinator.capture_payment(buyer, order.id, initiated.external_payment_id)

    with pytest.raises(InvalidTransitionError) as exc:
        await coordinator.cancel_order(buyer, order.id)
    assert "request a refund" in exc.value.message


async def test_cancelled_order_cannot_be_captured(coordinator, buyer, seed_event):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))
    initiated = await coordinator.initiate_payment(buyer, order.id)
    await coordinator.cancel_order(buyer, order.id)

    with pytest.raises(InvalidTransitionError):
        await coordinator.capture_payment(buyer, order.id, initiated.external_payment_id)


# ==============================================================================
# Reads
# ==============================================================================


async def test_list_orders_scoped_to_owner(
    coordinator, buyer, other_buyer, admin, seed_event,
):
    await coordinator.create_order(buyer, _cart(seed_event.id, quantity=1))
    await coordinator.create_order(buyer, _cart(seed_event.id, quantity=2))
    await coordinator.create_order(other_buyer, _cart(seed_event.id, quantity=1))

    assert len(await coordinator.list_orders(buyer)) == 2
    assert len(await coordinator.list_orders(other_buyer)) == 1
    assert len(await coordinator.list_orders(admin)) == 3
    assert len(await coordinator.list_orders(buyer, status=OrderStatus.CANCELLED)) == 0


async def test_get_order_by_stranger_forbidden(coordinator, buyer, other_buyer, seed_event):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))

    with pytest.raises(AuthorizationError):
        await coordinator.get_order(other_buyer, order.id)


async def test_receipt_requires_paid_order(coordinator, buyer, seed_event):
    order = await coordinator.create_order(buyer, _cart(seed_event.id))

    with pytest.raises(ValidationError):
        await coordinator.get_receipt(buyer, order.id)


async def test_receipt_snapshot_of_paid_order(coordinator, buyer, seed_event, seed_discount):
    order = await coordinator.create_order(buyer, _cart(seed_event.id, code="SAVE10"))
    initiated = await coordinator.initiate_payment(buyer, order.id)
    await coordinator.capture_payment(buyer, order.id, initiated.external_payment_id)

    receipt = await coordinator.get_receipt(buyer, order.id)

    assert receipt.total_amount == Decimal("54.00")
    assert receipt.payment.external_order_id == initiated.external_payment_id
    assert receipt.tickets[0].line_total == Decimal("60.00")
    with pytest.raises(SchemaValidationError):
        receipt.total_amount = Decimal("1")


async def test_list_payments_newest_first_and_scoped(
    coordinator, buyer, other_buyer, admin, seed_event,
):
    paid = []
    for actor, quantity in ((buyer, 1), (other_buyer, 2), (buyer, 3)):
        order = await coordinator.create_order(actor, _cart(seed_event.id, quantity=quantity))
        initiated = await coordinator.initiate_payment(actor, order.id)
        await coordinator.capture_payment(actor, order.id, initiated.external_payment_id)
        paid.append(order.id)
    await coordinator.create_order(buyer, _cart(seed_event.id, quantity=1))

    own = await coordinator.list_payments(buyer)
    assert [p.order_id for p in own] == [paid[2], paid[0]]
    assert [p.amount for p in own] == [Decimal("60.00"), Decimal("20.00")]

    everything = await coordinator.list_payments(admin)
    assert [p.order_id for p in everything] == list(reversed(paid))
    assert [p.order_id for p in await coordinator.list_payments(admin, limit=1, offset=1)] == [
        paid[1],
    ]
