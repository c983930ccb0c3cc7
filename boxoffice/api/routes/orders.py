"""Order Routes — cart submission, payment initiation, capture, cancel, receipt.

Invariants:
    - Every route requires a caller identity (deps.get_actor)
    - Capture is safe to repeat; a replay answers 200 with replayed=true
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from boxoffice.api.deps import get_actor, get_coordinator
from boxoffice.core.domain_types import Actor, OrderStatus
from boxoffice.schemas.cart import CartCreate
from boxoffice.schemas.order import (
    CaptureRequest,
    CaptureResponse,
    OrderList,
    OrderResponse,
    OrderSnapshot,
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentResponse,
)
from boxoffice.services.settlement import SettlementCoordinator

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post(
    "", response_model=OrderResponse, status_code=status.HTTP_201_CREATED,
)
async def create_order(
    body: CartCreate,
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    """Submit a cart; reserves inventory and returns the pending order."""
    order = await coordinator.create_order(actor, body)
    return OrderResponse.model_validate(order)


@router.get("", response_model=OrderList)
async def list_orders(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: OrderStatus | None = Query(None, alias="status"),
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    orders = await coordinator.list_orders(actor, limit, offset, status_filter)
    return OrderList(
        orders=[OrderResponse.model_validate(o) for o in orders],
        limit=limit, offset=offset,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    return OrderResponse.model_validate(await coordinator.get_order(actor, order_id))


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    return OrderResponse.model_validate(await coordinator.cancel_order(actor, order_id))


@router.post("/{order_id}/payment", response_model=PaymentInitiateResponse)
async def initiate_payment(
    order_id: UUID,
    body: PaymentInitiateRequest | None = None,
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    """Create the processor payment; the buyer approves it at approval_url."""
    body = body or PaymentInitiateRequest()
    order = await coordinator.initiate_payment(
        actor, order_id, body.return_url, body.cancel_url,
    )
    return PaymentInitiateResponse(
        order_id=order.id,
        external_payment_id=order.external_payment_id,
        approval_url=order.approval_url,
        total_amount=order.total_amount,
        currency=order.currency,
    )


@router.post("/{order_id}/capture", response_model=CaptureResponse)
async def capture_payment(
    order_id: UUID,
    body: CaptureRequest,
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    result = await coordinator.capture_payment(actor, order_id, body.external_payment_id)
    return CaptureResponse(
        order=OrderResponse.model_validate(result.order),
        payment=(
            PaymentResponse.model_validate(result.payment) if result.payment else None
        ),
        replayed=result.replayed,
    )


@router.get("/{order_id}/receipt", response_model=OrderSnapshot)
async def get_receipt(
    order_id: UUID,
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    """Read-only snapshot for receipt/ticket rendering."""
    return await coordinator.get_receipt(actor, order_id)
