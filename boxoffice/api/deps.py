"""API Dependencies — caller identity and service wiring.

Invariants:
    - Identity is read from X-User-Id / X-User-Role, set by the auth collaborator
    - Missing or malformed identity -> 401 before any service runs
    - The payment gateway lives on app.state (created by the lifespan); tests override get_gateway
"""

from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.config import get_settings
from boxoffice.core.boundary_protocols import PaymentGateway
from boxoffice.core.domain_types import Actor, Role
from boxoffice.core.errors import AuthenticationRequiredError
from boxoffice.infrastructure.database import get_db
from boxoffice.services.discount_admin import DiscountAdmin
from boxoffice.services.discount_validator import DiscountValidator
from boxoffice.services.inventory_ledger import InventoryLedger
from boxoffice.services.notifications import LoggingNotifier, Notifier
from boxoffice.services.refund_workflow import RefundWorkflow
from boxoffice.services.settlement import SettlementCoordinator


async def get_actor(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Actor:
    if not x_user_id:
        raise AuthenticationRequiredError()
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise AuthenticationRequiredError("Invalid user identity")
    try:
        role = Role((x_user_role or Role.USER.value).strip().lower())
    except ValueError:
        raise AuthenticationRequiredError("Invalid user role")
    return Actor(user_id=user_id, role=role)


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_notifier() -> Notifier:
    return LoggingNotifier()


def get_coordinator(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> SettlementCoordinator:
    return SettlementCoordinator(db, gateway, notifier, get_settings())


def get_refund_workflow(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> RefundWorkflow:
    return RefundWorkflow(db, gateway, notifier, get_settings())


def get_discount_admin(db: AsyncSession = Depends(get_db)) -> DiscountAdmin:
    return DiscountAdmin(db)


def get_discount_validator(db: AsyncSession = Depends(get_db)) -> DiscountValidator:
    return DiscountValidator(db)


def get_ledger(db: AsyncSession = Depends(get_db)) -> InventoryLedger:
    return InventoryLedger(db)
