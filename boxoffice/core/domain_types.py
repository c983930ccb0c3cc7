"""Domain Types — lifecycle enums and the request actor.

Invariants:
    - All valid states encoded as Enums — no raw string matching in services
    - str Enums serialize to JSON and store in String columns as their value
    - Order.payment_status CAPTURE_UNKNOWN means "capture attempted, reconcile on next check"
    - RefundRequest.status APPROVING means "processor refund claimed, approve again to reconcile"
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


# ─── Lifecycle Enums ─────────────────────────────────────────────

class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUND_REQUESTED = "refund_requested"
    REFUNDED = "refunded"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    CAPTURE_UNKNOWN = "capture_unknown"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class TicketPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    RELEASED = "released"
    REFUNDED = "refunded"


class HoldStatus(str, Enum):
    """Inventory hold lifecycle: held -> committed | released."""
    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundStatus(str, Enum):
    PENDING = "pending"
    # Claimed by a reviewer; the processor refund is in flight or unreconciled
    APPROVING = "approving"
    APPROVED = "approved"
    REJECTED = "rejected"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DiscountScope(str, Enum):
    """cart: minimum checked against subtotal; per_ticket: against ticket count."""
    CART = "cart"
    PER_TICKET = "per_ticket"


class EventStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CaptureStatus(str, Enum):
    """Normalized gateway capture result."""
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class Role(str, Enum):
    USER = "user"
    ORGANIZER = "organizer"
    ADMIN = "admin"


# ─── Request Actor ───────────────────────────────────────────────

@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller handed over by the auth collaborator."""
    user_id: UUID
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
