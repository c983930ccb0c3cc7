"""Notifications — post-transition hooks for the email collaborator.

Invariants:
    - Notifications run after the settlement transaction commits
    - A failing notifier is logged and never turns a settled transition into an error
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from boxoffice.schemas.order import OrderSnapshot
from boxoffice.schemas.refund import RefundResponse

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def order_paid(self, snapshot: OrderSnapshot) -> None: ...

    async def order_payment_failed(self, order: OrderSnapshot) -> None: ...

    async def refund_decided(self, refund: RefundResponse) -> None: ...


class LoggingNotifier:
    """Default notifier: records the transition in the application log."""

    async def order_paid(self, snapshot: OrderSnapshot) -> None:
        logger.info(
            f"Order {snapshot.order_number} paid ({snapshot.total_amount} {snapshot.currency})",
            extra={"order_id": str(snapshot.order_id)},
        )

    async def order_payment_failed(self, order: OrderSnapshot) -> None:
        logger.info(
            f"Order {order.order_number} payment failed: {order.failure_reason}",
            extra={"order_id": str(order.order_id)},
        )

    async def refund_decided(self, refund: RefundResponse) -> None:
        logger.info(
            f"Refund request {refund.status.value}",
            extra={"refund_id": str(refund.id), "order_id": str(refund.order_id)},
        )


async def notify_safely(
    send: Callable[[], Awaitable[None]], kind: str, **ids: str,
) -> None:
    try:
        await send()
    except Exception as e:
        logger.error(f"Notification '{kind}' failed: {e}", extra=ids, exc_info=True)
