"""ORM Models — SQLAlchemy declarative models for the settlement core.

Invariants:
    - All models inherit from Base (db/base.py)
    - Order is the aggregate root of the sale; it owns its Tickets and Holds
    - Event owns TicketType capacity counters; orders only reference them

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from boxoffice.models.event import Event, TicketType  # noqa: F401
from boxoffice.models.discount import Discount, discount_events  # noqa: F401
from boxoffice.models.order import Order  # noqa: F401
from boxoffice.models.ticket import Ticket  # noqa: F401
from boxoffice.models.inventory_hold import InventoryHold  # noqa: F401
from boxoffice.models.payment import Payment  # noqa: F401
from boxoffice.models.refund_request import RefundRequest  # noqa: F401
