"""Payment Routes — the caller's payment records."""

from fastapi import APIRouter, Depends, Query

from boxoffice.api.deps import get_actor, get_coordinator
from boxoffice.core.domain_types import Actor
from boxoffice.schemas.order import PaymentResponse
from boxoffice.services.settlement import SettlementCoordinator

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.get("", response_model=list[PaymentResponse])
async def list_payments(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    coordinator: SettlementCoordinator = Depends(get_coordinator),
):
    """Own payments, newest first; admins see every payment."""
    payments = await coordinator.list_payments(actor, limit, offset)
    return [PaymentResponse.model_validate(p) for p in payments]
