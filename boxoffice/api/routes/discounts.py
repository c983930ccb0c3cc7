"""Discount Routes — cart quotes for buyers, administration for organizers.

Invariants:
    - /discounts/validate never consumes usage
    - Administration requires organizer (owning the events) or admin role
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from boxoffice.api.deps import (
    get_actor, get_discount_admin, get_discount_validator, get_ledger,
)
from boxoffice.core.domain_types import Actor
from boxoffice.core.money import PricedLine, payable_total, subtotal, to_cents
from boxoffice.schemas.discount import (
    DiscountCreate,
    DiscountQuoteResponse,
    DiscountResponse,
    DiscountStats,
    DiscountUpdate,
    DiscountValidateRequest,
)
from boxoffice.services.discount_admin import DiscountAdmin
from boxoffice.services.discount_validator import DiscountValidator
from boxoffice.services.inventory_ledger import InventoryLedger

router = APIRouter(prefix="/api/v1", tags=["discounts"])


@router.post("/discounts/validate", response_model=DiscountQuoteResponse)
async def validate_discount(
    body: DiscountValidateRequest,
    actor: Actor = Depends(get_actor),
    validator: DiscountValidator = Depends(get_discount_validator),
    ledger: InventoryLedger = Depends(get_ledger),
):
    """Quote a code against a cart priced from current ticket-type prices."""
    lines = []
    for line in body.lines:
        row = await ledger.get_ticket_type(body.event_id, line.ticket_type)
        lines.append(PricedLine(row.type, to_cents(row.price), line.quantity))
    cart_subtotal = subtotal(lines)
    quote = await validator.validate_cart(
        body.code, body.event_id,
        [(line.ticket_type, line.quantity) for line in lines],
        cart_subtotal,
    )
    return DiscountQuoteResponse(
        valid=quote.valid,
        discount_id=quote.discount_id,
        discount_type=quote.discount_type,
        discount_value=quote.discount_value,
        scope=quote.scope,
        subtotal=cart_subtotal,
        discount_amount=quote.discount_amount,
        total_amount=payable_total(cart_subtotal, quote.discount_amount),
    )


@router.post(
    "/discounts", response_model=DiscountResponse, status_code=status.HTTP_201_CREATED,
)
async def create_discount(
    body: DiscountCreate,
    actor: Actor = Depends(get_actor),
    admin: DiscountAdmin = Depends(get_discount_admin),
):
    return DiscountResponse.from_model(await admin.create(actor, body))


@router.patch("/discounts/{discount_id}", response_model=DiscountResponse)
async def update_discount(
    discount_id: UUID,
    body: DiscountUpdate,
    actor: Actor = Depends(get_actor),
    admin: DiscountAdmin = Depends(get_discount_admin),
):
    return DiscountResponse.from_model(await admin.update(actor, discount_id, body))


@router.delete("/discounts/{discount_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_discount(
    discount_id: UUID,
    actor: Actor = Depends(get_actor),
    admin: DiscountAdmin = Depends(get_discount_admin),
):
    await admin.delete(actor, discount_id)


@router.get("/events/{event_id}/discounts", response_model=list[DiscountResponse])
async def list_event_discounts(
    event_id: UUID,
    actor: Actor = Depends(get_actor),
    admin: DiscountAdmin = Depends(get_discount_admin),
):
    discounts = await admin.list_for_event(actor, event_id)
    return [DiscountResponse.from_model(d) for d in discounts]


@router.get("/discounts/{discount_id}/stats", response_model=DiscountStats)
async def discount_stats(
    discount_id: UUID,
    actor: Actor = Depends(get_actor),
    admin: DiscountAdmin = Depends(get_discount_admin),
):
    return await admin.get_stats(actor, discount_id)
