"""Refund Routes — ticket-holder requests and administrative decisions."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from boxoffice.api.deps import get_actor, get_refund_workflow
from boxoffice.core.domain_types import Actor, RefundStatus
from boxoffice.schemas.refund import RefundCreate, RefundDecision, RefundResponse
from boxoffice.services.refund_workflow import RefundWorkflow

router = APIRouter(prefix="/api/v1/refunds", tags=["refunds"])


@router.post("", response_model=RefundResponse, status_code=status.HTTP_201_CREATED)
async def request_refund(
    body: RefundCreate,
    actor: Actor = Depends(get_actor),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    refund = await workflow.request_refund(actor, body.order_id, body.reason)
    return RefundResponse.model_validate(refund)


@router.get("", response_model=list[RefundResponse])
async def list_refunds(
    status_filter: RefundStatus | None = Query(None, alias="status"),
    actor: Actor = Depends(get_actor),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    """Own requests; admins see every request, optionally filtered by status."""
    if actor.is_admin:
        refunds = await workflow.list_all(actor, status_filter)
    else:
        refunds = await workflow.list_for_user(actor)
    return [RefundResponse.model_validate(r) for r in refunds]


@router.get("/{refund_id}", response_model=RefundResponse)
async def get_refund(
    refund_id: UUID,
    actor: Actor = Depends(get_actor),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    return RefundResponse.model_validate(await workflow.get(actor, refund_id))


@router.post("/{refund_id}/approve", response_model=RefundResponse)
async def approve_refund(
    refund_id: UUID,
    body: RefundDecision | None = None,
    actor: Actor = Depends(get_actor),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    body = body or RefundDecision()
    refund = await workflow.approve(actor, refund_id, body.note, body.restock)
    return RefundResponse.model_validate(refund)


@router.post("/{refund_id}/reject", response_model=RefundResponse)
async def reject_refund(
    refund_id: UUID,
    body: RefundDecision | None = None,
    actor: Actor = Depends(get_actor),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    body = body or RefundDecision()
    return RefundResponse.model_validate(await workflow.reject(actor, refund_id, body.note))
