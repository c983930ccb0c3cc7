"""Boundary Protocols — contract between the settlement core and the payment processor.

Invariants:
    - Core never imports infrastructure; the gateway is injected
    - Gateway results are normalized: capture status is completed | pending | failed
    - Failures surface as GatewayError subclasses (core/errors.py), never raw HTTP errors
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from boxoffice.core.domain_types import CaptureStatus


@dataclass(frozen=True)
class CreatedPayment:
    external_id: str
    status: str
    approval_links: dict[str, str] = field(default_factory=dict)

    @property
    def approval_url(self) -> str | None:
        return self.approval_links.get("approve") or self.approval_links.get("payer-action")


@dataclass(frozen=True)
class CaptureOutcome:
    status: CaptureStatus
    external_id: str
    capture_id: str | None = None
    payer_ref: str | None = None
    provider_status: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundOutcome:
    refund_id: str
    status: str
    amount: Decimal


class PaymentGateway(Protocol):
    """Payment processor boundary — implemented by infrastructure/paypal_gateway.py."""

    async def create_payment(
        self, order_id: str, amount: Decimal, metadata: dict[str, Any],
    ) -> CreatedPayment: ...

    async def capture_payment(self, external_id: str) -> CaptureOutcome: ...

    async def refund_capture(
        self, capture_id: str, amount: Decimal, note: str | None = None,
    ) -> RefundOutcome: ...
