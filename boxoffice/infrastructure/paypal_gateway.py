"""PayPal Gateway Adapter — REST v2 checkout over httpx with token caching and error mapping.

Invariants:
    - Access tokens cached until expires_in minus a safety margin; refresh serialized by a lock
    - A 401 on an API call invalidates the token and is retried exactly once
    - Timeouts -> GatewayTimeoutError; transport errors, 429, 5xx -> GatewayUnavailableError
    - 401/403 after refresh -> GatewayAuthError; other 4xx -> GatewayValidationError
    - Every mutating call carries a PayPal-Request-Id so a repeated call is idempotent
    - Capture results normalized to completed | pending | failed (CaptureOutcome)
    - No other retries: retry is the caller's decision
"""

import asyncio
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import httpx

from boxoffice.config import Settings
from boxoffice.core.boundary_protocols import (
    CaptureOutcome, CreatedPayment, RefundOutcome,
)
from boxoffice.core.domain_types import CaptureStatus
from boxoffice.core.errors import (
    ErrorContext,
    GatewayAuthError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    GatewayValidationError,
)
from boxoffice.core.money import format_amount, to_cents

logger = logging.getLogger(__name__)

ALREADY_CAPTURED = "ORDER_ALREADY_CAPTURED"
DECLINED_ISSUES = frozenset({
    "INSTRUMENT_DECLINED", "TRANSACTION_REFUSED", "PAYER_CANNOT_PAY",
})

_CAPTURE_STATUS = {
    "COMPLETED": CaptureStatus.COMPLETED,
    "PENDING": CaptureStatus.PENDING,
}
_PENDING_ORDER_STATUSES = frozenset({
    "CREATED", "SAVED", "APPROVED", "PAYER_ACTION_REQUIRED",
})


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for the process; closed by the app lifespan."""
    return httpx.AsyncClient(
        base_url=settings.paypal_base_url,
        timeout=httpx.Timeout(settings.gateway_timeout_seconds),
    )


def _provider_issue(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    details = body.get("details") or []
    if details and isinstance(details[0], dict) and details[0].get("issue"):
        return details[0]["issue"]
    return body.get("name") or body.get("error")


def _links(body: dict) -> dict[str, str]:
    return {
        link["rel"]: link["href"]
        for link in body.get("links", [])
        if "rel" in link and "href" in link
    }


def _first_capture(body: dict) -> dict | None:
    for unit in body.get("purchase_units", []):
        captures = (unit.get("payments") or {}).get("captures") or []
        if captures:
            return captures[0]
    return None


def outcome_from_order(external_id: str, body: dict) -> CaptureOutcome:
    """Normalize a PayPal order (capture response or order read) into a CaptureOutcome."""
    capture = _first_capture(body)
    order_status = body.get("status")
    if capture is not None:
        provider_status = capture.get("status")
        status = _CAPTURE_STATUS.get(provider_status, CaptureStatus.FAILED)
    else:
        provider_status = order_status
        if order_status == "COMPLETED":
            status = CaptureStatus.COMPLETED
        elif order_status in _PENDING_ORDER_STATUSES:
            status = CaptureStatus.PENDING
        else:
            status = CaptureStatus.FAILED
    return CaptureOutcome(
        status=status,
        external_id=external_id,
        capture_id=capture.get("id") if capture else None,
        payer_ref=(body.get("payer") or {}).get("payer_id"),
        provider_status=provider_status,
        raw=body,
    )


class PayPalGateway:
    """PaymentGateway implementation for PayPal checkout orders."""

    TOKEN_PATH = "/v1/oauth2/token"
    ORDERS_PATH = "/v2/checkout/orders"
    CAPTURES_PATH = "/v2/payments/captures"

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        currency: str = "USD",
        brand_name: str = "BoxOffice",
        token_expiry_margin_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.currency = currency
        self.brand_name = brand_name
        self.token_expiry_margin_seconds = token_expiry_margin_seconds
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "PayPalGateway":
        return cls(
            http,
            client_id=settings.paypal_client_id,
            client_secret=settings.paypal_client_secret,
            currency=settings.currency,
            brand_name=settings.paypal_brand_name,
            token_expiry_margin_seconds=settings.gateway_token_expiry_margin_seconds,
        )

    # ─── PaymentGateway protocol ────────────────────────────────

    async def create_payment(
        self, order_id: str, amount: Decimal, metadata: dict[str, Any],
    ) -> CreatedPayment:
        """Create a CAPTURE-intent checkout order scoped to our order id."""
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": order_id,
                    "description": metadata.get("description") or f"Event tickets for order {order_id}",
                    "amount": {
                        "currency_code": self.currency,
                        "value": format_amount(amount),
                    },
                },
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
                "return_url": metadata.get("return_url"),
                "cancel_url": metadata.get("cancel_url"),
            },
        }
        response = await self._request(
            "POST", self.ORDERS_PATH, json=payload,
            idempotency_key=f"create-{order_id}",
            context=ErrorContext(order_id=order_id),
        )
        body = response.json()
        created = CreatedPayment(
            external_id=body["id"],
            status=body.get("status", "CREATED"),
            approval_links=_links(body),
        )
        logger.info(
            "PayPal order created",
            extra={"order_id": order_id, "external_id": created.external_id},
        )
        return created

    async def capture_payment(self, external_id: str) -> CaptureOutcome:
        """Capture an approved checkout order; safe to repeat for the same id."""
        ctx = ErrorContext(external_id=external_id)
        try:
            response = await self._request(
                "POST", f"{self.ORDERS_PATH}/{external_id}/capture", json={},
                idempotency_key=f"capture-{external_id}", context=ctx,
            )
        except GatewayValidationError as e:
            if e.provider_issue == ALREADY_CAPTURED:
                logger.info(
                    "PayPal order already captured, reading current state",
                    extra={"external_id": external_id},
                )
                return await self.get_payment(external_id)
            if e.provider_issue in DECLINED_ISSUES:
                logger.warning(
                    f"PayPal capture declined: {e.provider_issue}",
                    extra={"external_id": external_id},
                )
                return CaptureOutcome(
                    status=CaptureStatus.FAILED,
                    external_id=external_id,
                    provider_status=e.provider_issue,
                )
            raise
        outcome = outcome_from_order(external_id, response.json())
        logger.info(
            "PayPal capture resolved",
            extra={"external_id": external_id, "status": outcome.status.value},
        )
        return outcome

    async def refund_capture(
        self, capture_id: str, amount: Decimal, note: str | None = None,
    ) -> RefundOutcome:
        payload: dict[str, Any] = {
            "amount": {"currency_code": self.currency, "value": format_amount(amount)},
        }
        if note:
            payload["note_to_payer"] = note[:255]
        response = await self._request(
            "POST", f"{self.CAPTURES_PATH}/{capture_id}/refund", json=payload,
            idempotency_key=f"refund-{capture_id}-{format_amount(amount)}",
            context=ErrorContext(external_id=capture_id),
        )
        body = response.json()
        logger.info(
            "PayPal capture refunded",
            extra={"external_id": capture_id, "status": body.get("status")},
        )
        return RefundOutcome(
            refund_id=body["id"],
            status=body.get("status", "COMPLETED"),
            amount=to_cents(amount),
        )

    async def get_payment(self, external_id: str) -> CaptureOutcome:
        """Read the checkout order and normalize its capture state."""
        response = await self._request(
            "GET", f"{self.ORDERS_PATH}/{external_id}",
            context=ErrorContext(external_id=external_id),
        )
        return outcome_from_order(external_id, response.json())

    # ─── Token handling ─────────────────────────────────────────

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    async def _access_token(self) -> str:
        if self._token and self._clock() < self._token_expires_at:
            return self._token
        async with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token
            await self._fetch_token()
            return self._token

    async def _fetch_token(self) -> None:
        try:
            response = await self.http.post(
                self.TOKEN_PATH,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException:
            raise GatewayTimeoutError("Payment processor token request timed out")
        except httpx.TransportError as e:
            raise GatewayUnavailableError(f"Payment processor unreachable: {e}")

        if response.status_code == 429 or response.status_code >= 500:
            raise GatewayUnavailableError(
                f"Payment processor token endpoint returned {response.status_code}",
            )
        if response.status_code != 200:
            logger.error(f"PayPal token exchange refused ({response.status_code})")
            raise GatewayAuthError()

        body = response.json()
        token = body.get("access_token")
        if not token:
            raise GatewayAuthError("Payment processor returned no access token")
        expires_in = int(body.get("expires_in", 0))
        self._token = token
        self._token_expires_at = self._clock() + max(
            0, expires_in - self.token_expiry_margin_seconds,
        )
        logger.info("PayPal access token refreshed")

    # ─── HTTP plumbing ──────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        idempotency_key: str | None = None,
        context: ErrorContext | None = None,
    ) -> httpx.Response:
        for attempt in range(2):
            token = await self._access_token()
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
            if idempotency_key:
                headers["PayPal-Request-Id"] = idempotency_key
            try:
                response = await self.http.request(
                    method, path, json=json, headers=headers,
                )
            except httpx.TimeoutException:
                raise GatewayTimeoutError(context=context)
            except httpx.TransportError as e:
                raise GatewayUnavailableError(
                    f"Payment processor unreachable: {e}", context=context,
                )

            if response.status_code == 401 and attempt == 0:
                logger.warning(
                    "PayPal rejected cached token, refreshing",
                    extra={"attempt": attempt + 1},
                )
                self.invalidate_token()
                continue
            self._raise_for_status(response, context)
            return response
        raise GatewayAuthError(context=context)

    def _raise_for_status(self, response: httpx.Response, context: ErrorContext | None) -> None:
        if response.is_success:
            return
        code = response.status_code
        if code in (401, 403):
            raise GatewayAuthError(context=context)
        if code == 429 or code >= 500:
            raise GatewayUnavailableError(
                f"Payment processor returned {code}", context=context,
            )
        issue = _provider_issue(response)
        raise GatewayValidationError(
            f"Payment processor rejected request ({issue or code})",
            provider_issue=issue,
            context=context,
        )
