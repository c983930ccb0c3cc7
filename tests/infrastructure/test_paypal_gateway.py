"""PayPal Gateway Adapter — REST calls over httpx.MockTransport.

Invariants:
    - Token fetched once and cached until expires_in - margin
    - A 401 on an API call refreshes the token and retries once
    - Timeouts -> GatewayTimeoutError; transport errors, 429, 5xx -> GatewayUnavailableError
    - Other 4xx -> GatewayValidationError carrying the provider issue
    - ORDER_ALREADY_CAPTURED resolves through an order read; declines map to failed
    - Mutating calls carry PayPal-Request-Id
"""

import json
from decimal import Decimal

import httpx
import pytest

from boxoffice.core.domain_types import CaptureStatus
from boxoffice.core.errors import (
    GatewayAuthError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    GatewayValidationError,
)
from boxoffice.infrastructure.paypal_gateway import PayPalGateway, outcome_from_order

BASE_URL = "https://paypal.test"
ORDER_PATH = "/v2/checkout/orders/ORDER-1"


def _order_body(order_status="COMPLETED", capture_status="COMPLETED"):
    body = {
        "id": "ORDER-1",
        "status": order_status,
        "payer": {"payer_id": "PAYER-9"},
        "purchase_units": [{"reference_id": "o-1"}],
    }
    if capture_status is not None:
        body["purchase_units"][0]["payments"] = {
            "captures": [{"id": "CAP-1", "status": capture_status}],
        }
    return body


def _issue(status_code, issue):
    return httpx.Response(
        status_code,
        json={"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": issue}]},
    )


class FakePayPal:
    """MockTransport handler: token endpoint plus scripted API responses.

    routes[(method, path)] is a list consumed in order; the last entry repeats.
    """

    def __init__(self, expires_in=3600):
        self.expires_in = expires_in
        self.token_calls = 0
        self.token_response: httpx.Response | None = None
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == PayPalGateway.TOKEN_PATH:
            self.token_calls += 1
            if self.token_response is not None:
                return self.token_response
            return httpx.Response(
                200,
                json={"access_token": f"tok-{self.token_calls}", "expires_in": self.expires_in},
            )
        queue = self.routes[(request.method, request.url.path)]
        step = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(step, Exception):
            raise step
        return step

    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path != PayPalGateway.TOKEN_PATH]


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def paypal():
    return FakePayPal()


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
async def gateway(paypal, clock):
    http = httpx.AsyncClient(transport=httpx.MockTransport(paypal), base_url=BASE_URL)
    yield PayPalGateway(http, "client-id", "client-secret", clock=clock)
    await http.aclose()


# ─── create_payment ─────────────────────────────────────────────

async def test_create_payment_payload_and_links(gateway, paypal):
    paypal.routes[("POST", "/v2/checkout/orders")] = [httpx.Response(201, json={
        "id": "ORDER-1",
        "status": "CREATED",
        "links": [
            {"rel": "self", "href": f"{BASE_URL}{ORDER_PATH}"},
            {"rel": "approve", "href": "https://paypal.test/checkoutnow?token=ORDER-1"},
        ],
    })]

    created = await gateway.create_payment(
        "o-1", Decimal("54"), {"return_url": "https://shop.test/ok", "cancel_url": "https://shop.test/no"},
    )

    assert created.external_id == "ORDER-1"
    assert created.approval_url == "https://paypal.test/checkoutnow?token=ORDER-1"
    request = paypal.api_requests()[0]
    assert request.headers["Authorization"] == "Bearer tok-1"
    assert request.headers["PayPal-Request-Id"] == "create-o-1"
    body = json.loads(request.content)
    assert body["intent"] == "CAPTURE"
    assert body["purchase_units"][0]["reference_id"] == "o-1"
    assert body["purchase_units"][0]["amount"] == {"currency_code": "USD", "value": "54.00"}
    assert body["application_context"]["return_url"] == "https://shop.test/ok"


# ─── Token handling ─────────────────────────────────────────────

async def test_token_fetched_with_client_credentials(gateway, paypal):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.Response(200, json=_order_body())]

    await gateway.get_payment("ORDER-1")

    token_request = paypal.requests[0]
    assert token_request.url.path == "/v1/oauth2/token"
    assert token_request.headers["Authorization"].startswith("Basic ")
    assert token_request.content == b"grant_type=client_credentials"


async def test_token_cached_between_calls(gateway, paypal):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.Response(200, json=_order_body())]

    await gateway.get_payment("ORDER-1")
    await gateway.get_payment("ORDER-1")

    assert paypal.token_calls == 1


async def test_token_refreshed_after_expiry_margin(gateway, paypal, clock):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.Response(200, json=_order_body())]

    await gateway.get_payment("ORDER-1")
    clock.now += 3600 - 60 - 1
    await gateway.get_payment("ORDER-1")
    assert paypal.token_calls == 1

    clock.now += 2
    await gateway.get_payment("ORDER-1")
    assert paypal.token_calls == 2
    assert paypal.api_requests()[-1].headers["Authorization"] == "Bearer tok-2"


async def test_401_refreshes_token_and_retries_once(gateway, paypal):
    paypal.routes[("GET", ORDER_PATH)] = [
        httpx.Response(401, json={"error": "invalid_token"}),
        httpx.Response(200, json=_order_body()),
    ]

    outcome = await gateway.get_payment("ORDER-1")

    assert outcome.status == CaptureStatus.COMPLETED
    assert paypal.token_calls == 2
    assert [r.headers["Authorization"] for r in paypal.api_requests()] == [
        "Bearer tok-1", "Bearer tok-2",
    ]


async def test_persistent_401_is_auth_error(gateway, paypal):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.Response(401)]

    with pytest.raises(GatewayAuthError):
        await gateway.get_payment("ORDER-1")
    assert len(paypal.api_requests()) == 2


async def test_refused_token_exchange_is_auth_error(gateway, paypal):
    paypal.token_response = httpx.Response(401, json={"error": "invalid_client"})

    with pytest.raises(GatewayAuthError) as exc:
        await gateway.get_payment("ORDER-1")
    assert exc.value.retryable is False


async def test_token_endpoint_outage_is_unavailable(gateway, paypal):
    paypal.token_response = httpx.Response(503)

    with pytest.raises(GatewayUnavailableError):
        await gateway.get_payment("ORDER-1")


# ─── Error mapping ──────────────────────────────────────────────

@pytest.mark.parametrize("status_code", [429, 500, 503])
async def test_throttling_and_server_errors_are_unavailable(gateway, paypal, status_code):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.Response(status_code)]

    with pytest.raises(GatewayUnavailableError) as exc:
        await gateway.get_payment("ORDER-1")
    assert exc.value.retryable is True


async def test_forbidden_is_auth_error(gateway, paypal):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.Response(403)]

    with pytest.raises(GatewayAuthError):
        await gateway.get_payment("ORDER-1")


async def test_client_error_carries_provider_issue(gateway, paypal):
    paypal.routes[("POST", f"{ORDER_PATH}/capture")] = [_issue(422, "ORDER_NOT_APPROVED")]

    with pytest.raises(GatewayValidationError) as exc:
        await gateway.capture_payment("ORDER-1")
    assert exc.value.provider_issue == "ORDER_NOT_APPROVED"
    assert exc.value.retryable is False


async def test_timeout_is_timeout_error(gateway, paypal):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.ReadTimeout("read timed out")]

    with pytest.raises(GatewayTimeoutError) as exc:
        await gateway.get_payment("ORDER-1")
    assert exc.value.context.external_id == "ORDER-1"


async def test_connection_error_is_unavailable(gateway, paypal):
    paypal.routes[("GET", ORDER_PATH)] = [httpx.ConnectError("connection refused")]

    with pytest.raises(GatewayUnavailableError):
        await gateway.get_payment("ORDER-1")


# ─── capture_payment ────────────────────────────────────────────

async def test_capture_completed(gateway, paypal):
    paypal.routes[("POST", f"{ORDER_PATH}/capture")] = [
        httpx.Response(201, json=_order_body()),
    ]

    outcome = await gateway.capture_payment("ORDER-1")

    assert outcome.status == CaptureStatus.COMPLETED
    assert outcome.capture_id == "CAP-1"
    assert outcome.payer_ref == "PAYER-9"
    assert outcome.external_id == "ORDER-1"
    request = paypal.api_requests()[0]
    assert request.headers["PayPal-Request-Id"] == "capture-ORDER-1"


async def test_capture_already_captured_reads_order(gateway, paypal):
    paypal.routes[("POST", f"{ORDER_PATH}/capture")] = [_issue(422, "ORDER_ALREADY_CAPTURED")]
    paypal.routes[("GET", ORDER_PATH)] = [httpx.Response(200, json=_order_body())]

    outcome = await gateway.capture_payment("ORDER-1")

    assert outcome.status == CaptureStatus.COMPLETED
    assert outcome.capture_id == "CAP-1"
    assert [r.method for r in paypal.api_requests()] == ["POST", "GET"]


async def test_capture_instrument_declined_is_failed(gateway, paypal):
    paypal.routes[("POST", f"{ORDER_PATH}/capture")] = [_issue(422, "INSTRUMENT_DECLINED")]

    outcome = await gateway.capture_payment("ORDER-1")

    assert outcome.status == CaptureStatus.FAILED
    assert outcome.provider_status == "INSTRUMENT_DECLINED"


@pytest.mark.parametrize("capture_status, expected", [
    ("PENDING", CaptureStatus.PENDING),
    ("DECLINED", CaptureStatus.FAILED),
    ("FAILED", CaptureStatus.FAILED),
])
async def test_capture_status_mapping(gateway, paypal, capture_status, expected):
    paypal.routes[("POST", f"{ORDER_PATH}/capture")] = [
        httpx.Response(201, json=_order_body(capture_status=capture_status)),
    ]

    outcome = await gateway.capture_payment("ORDER-1")

    assert outcome.status == expected
    assert outcome.provider_status == capture_status


# ─── refund_capture ─────────────────────────────────────────────

async def test_refund_capture(gateway, paypal):
    paypal.routes[("POST", "/v2/payments/captures/CAP-1/refund")] = [
        httpx.Response(201, json={"id": "REF-7", "status": "COMPLETED"}),
    ]

    refund = await gateway.refund_capture("CAP-1", Decimal("54"), note="Cannot attend")

    assert refund.refund_id == "REF-7"
    assert refund.amount == Decimal("54.00")
    request = paypal.api_requests()[0]
    assert request.headers["PayPal-Request-Id"] == "refund-CAP-1-54.00"
    assert json.loads(request.content) == {
        "amount": {"currency_code": "USD", "value": "54.00"},
        "note_to_payer": "Cannot attend",
    }


# ─── outcome_from_order ─────────────────────────────────────────

def test_order_without_capture_approved_is_pending():
    outcome = outcome_from_order("ORDER-1", _order_body("APPROVED", capture_status=None))
    assert outcome.status == CaptureStatus.PENDING
    assert outcome.capture_id is None


def test_order_without_capture_voided_is_failed():
    outcome = outcome_from_order("ORDER-1", _order_body("VOIDED", capture_status=None))
    assert outcome.status == CaptureStatus.FAILED
    assert outcome.provider_status == "VOIDED"
