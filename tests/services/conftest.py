"""Service test fixtures — async DB, seeded catalogue, fake gateway, FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB sessions
    - get_gateway dependency overridden with the same FakeGateway the test inspects
    - db_manager patched so the readiness check sees the test engine

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for service and route tests
      (conditional UPDATE rowcounts behave the same as on PostgreSQL)
    - Seeded event "Concert" mirrors the settlement scenarios: GA at 20.00, capacity 100
    - Identity travels in X-User-Id / X-User-Role headers, as set by the auth collaborator
"""

import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

import boxoffice.infrastructure.database as db_module
from boxoffice.api.deps import get_gateway
from boxoffice.config import get_settings
from boxoffice.core.domain_types import Actor, Role
from boxoffice.db.base import Base
from boxoffice.infrastructure.database import DatabaseSessionManager, get_db
from boxoffice.main import app
from boxoffice.models.discount import Discount
from boxoffice.models.event import Event, TicketType
from boxoffice.services.discount_validator import DiscountValidator
from boxoffice.services.inventory_ledger import InventoryLedger
from boxoffice.services.refund_workflow import RefundWorkflow
from boxoffice.services.settlement import SettlementCoordinator

from tests.services.mock_gateway import FakeGateway


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


# ─── Actors ─────────────────────────────────────────────────────

@pytest.fixture
def organizer():
    return Actor(user_id=uuid.uuid4(), role=Role.ORGANIZER)


@pytest.fixture
def buyer():
    return Actor(user_id=uuid.uuid4(), role=Role.USER)


@pytest.fixture
def other_buyer():
    return Actor(user_id=uuid.uuid4(), role=Role.USER)


@pytest.fixture
def admin():
    return Actor(user_id=uuid.uuid4(), role=Role.ADMIN)


def headers_for(actor: Actor) -> dict[str, str]:
    return {"X-User-Id": str(actor.user_id), "X-User-Role": actor.role.value}


@pytest.fixture
def headers():
    """headers(actor) -> identity headers for route tests."""
    return headers_for


# ─── Catalogue ──────────────────────────────────────────────────

@pytest.fixture
async def seed_event(test_db, organizer):
    """Approved "Concert" with GA (20.00 x 100) and VIP (50.00 x 10)."""
    event = Event(
        organizer_id=organizer.user_id,
        title="Concert",
        event_status="approved",
        booking_available=True,
        ticket_types=[
            TicketType(type="GA", price=Decimal("20.00"), capacity=100, availability=100),
            TicketType(type="VIP", price=Decimal("50.00"), capacity=10, availability=10),
        ],
    )
    test_db.add(event)
    await test_db.commit()
    await test_db.refresh(event)
    return event


@pytest.fixture
async def seed_discount(test_db, seed_event, organizer):
    """SAVE10: 10% off the cart, unlimited, valid for the seeded event."""
    discount = Discount(
        code="SAVE10",
        discount_type="percentage",
        discount_value=Decimal("10"),
        scope="cart",
        minimum_purchase_amount=Decimal("0"),
        usage_count=0,
        is_active=True,
        created_by=organizer.user_id,
        events=[seed_event],
    )
    test_db.add(discount)
    await test_db.commit()
    await test_db.refresh(discount)
    return discount


# ─── Services ───────────────────────────────────────────────────

@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def ledger(test_db):
    return InventoryLedger(test_db)


@pytest.fixture
def validator(test_db):
    return DiscountValidator(test_db)


@pytest.fixture
def coordinator(test_db, gateway):
    return SettlementCoordinator(test_db, gateway, settings=get_settings())


@pytest.fixture
def refunds(test_db, gateway):
    return RefundWorkflow(test_db, gateway, settings=get_settings())


# ─── HTTP ───────────────────────────────────────────────────────

@pytest.fixture
async def client(test_engine, test_session_factory, gateway):
    """FastAPI test client with DB and gateway dependencies overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway

    # Patch db_manager for the readiness check, which bypasses get_db
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
