"""Fake Payment Gateway — scripted processor for coordinator and refund tests.

Invariants:
    - FakeGateway satisfies the PaymentGateway protocol (core/boundary_protocols.py)
    - create_payment returns a deterministic external id per order ("PAY-<order_id>")
    - capture_payment pops scripted outcomes/errors in order, defaulting to completed
    - Every call is recorded in `calls` as (method, args)
    - RecordingNotifier keeps snapshots sent after settled transitions

Design Decisions:
    - Flat class, no httpx: the PayPal adapter has its own MockTransport tests
    - Errors are queued instances, raised as-is, so tests pick the exact GatewayError subclass
"""

from decimal import Decimal

from boxoffice.core.boundary_protocols import (
    CaptureOutcome, CreatedPayment, RefundOutcome,
)
from boxoffice.core.domain_types import CaptureStatus


def completed(external_id: str, capture_id: str | None = None) -> CaptureOutcome:
    return CaptureOutcome(
        status=CaptureStatus.COMPLETED,
        external_id=external_id,
        capture_id=capture_id or f"CAP-{external_id}",
        payer_ref="PAYER-1",
        provider_status="COMPLETED",
        raw={"id": external_id, "status": "COMPLETED"},
    )


def failed(external_id: str, provider_status: str = "DECLINED") -> CaptureOutcome:
    return CaptureOutcome(
        status=CaptureStatus.FAILED,
        external_id=external_id,
        provider_status=provider_status,
    )


def pending(external_id: str) -> CaptureOutcome:
    return CaptureOutcome(
        status=CaptureStatus.PENDING,
        external_id=external_id,
        provider_status="PENDING",
    )


class FakeGateway:
    """In-memory processor with scripted capture results."""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        # Each entry: "completed" | "failed" | "pending" | Exception instance
        self.capture_script: list = []
        self.create_error: Exception | None = None
        self.refund_error: Exception | None = None
        self._refunds = 0

    async def create_payment(self, order_id, amount, metadata):
        self.calls.append(("create_payment", (order_id, amount, metadata)))
        if self.create_error is not None:
            raise self.create_error
        external_id = f"PAY-{order_id}"
        return CreatedPayment(
            external_id=external_id,
            status="CREATED",
            approval_links={"approve": f"https://paypal.test/checkoutnow?token={external_id}"},
        )

    async def capture_payment(self, external_id):
        self.calls.append(("capture_payment", (external_id,)))
        step = self.capture_script.pop(0) if self.capture_script else "completed"
        if isinstance(step, Exception):
            raise step
        if step == "failed":
            return failed(external_id)
        if step == "pending":
            return pending(external_id)
        return completed(external_id)

    async def refund_capture(self, capture_id, amount, note=None):
        self.calls.append(("refund_capture", (capture_id, amount, note)))
        if self.refund_error is not None:
            raise self.refund_error
        self._refunds += 1
        return RefundOutcome(
            refund_id=f"REF-{self._refunds}", status="COMPLETED", amount=Decimal(amount),
        )

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


class RecordingNotifier:
    """Notifier that keeps what it was sent; `fail` makes every call raise."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.paid = []
        self.failed = []
        self.refunds = []

    async def order_paid(self, snapshot):
        self._maybe_fail()
        self.paid.append(snapshot)

    async def order_payment_failed(self, order):
        self._maybe_fail()
        self.failed.append(order)

    async def refund_decided(self, refund):
        self._maybe_fail()
        self.refunds.append(refund)

    def _maybe_fail(self):
        if self.fail:
            raise RuntimeError("mail relay down")
