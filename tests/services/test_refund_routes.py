"""Refund Routes — ticket-holder requests and admin decisions over HTTP."""

from decimal import Decimal


async def _paid_order(client, headers, event_id) -> str:
    created = await client.post(
        "/api/v1/orders",
        json={"event_id": str(event_id), "lines": [{"ticket_type": "GA", "quantity": 2}]},
        headers=headers,
    )
    order_id = created.json()["id"]
    init = await client.post(f"/api/v1/orders/{order_id}/payment", headers=headers)
    await client.post(
        f"/api/v1/orders/{order_id}/capture",
        json={"external_payment_id": init.json()["external_payment_id"]},
        headers=headers,
    )
    return order_id


async def test_request_and_approve_refund(client, headers, buyer, admin, seed_event, gateway):
    order_id = await _paid_order(client, headers(buyer), seed_event.id)

    created = await client.post(
        "/api/v1/refunds",
        json={"order_id": order_id, "reason": "Cannot attend"},
        headers=headers(buyer),
    )
    assert created.status_code == 201
    refund = created.json()
    assert refund["status"] == "pending"
    assert Decimal(refund["amount"]) == Decimal("40.00")

    approved = await client.post(
        f"/api/v1/refunds/{refund['id']}/approve",
        json={"note": "Approved per policy"},
        headers=headers(admin),
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["external_refund_id"] == "REF-1"
    assert gateway.count("refund_capture") == 1

    order = await client.get(f"/api/v1/orders/{order_id}", headers=headers(buyer))
    assert order.json()["status"] == "refunded"
    assert order.json()["payment_status"] == "refunded"


async def test_refund_of_unpaid_order_is_400(client, headers, buyer, seed_event):
    created = await client.post(
        "/api/v1/orders",
        json={"event_id": str(seed_event.id), "lines": [{"ticket_type": "GA", "quantity": 1}]},
        headers=headers(buyer),
    )

    res = await client.post(
        "/api/v1/refunds",
        json={"order_id": created.json()["id"], "reason": "Changed my mind"},
        headers=headers(buyer),
    )

    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Only paid orders can be refunded"


async def test_duplicate_request_is_409(client, headers, buyer, seed_event):
    order_id = await _paid_order(client, headers(buyer), seed_event.id)
    body = {"order_id": order_id, "reason": "Cannot attend"}
    await client.post("/api/v1/refunds", json=body, headers=headers(buyer))

    res = await client.post("/api/v1/refunds", json=body, headers=headers(buyer))

    assert res.status_code == 409
    assert res.json()["error"]["code"] == "DUPLICATE_REFUND_REQUEST"


async def test_buyer_cannot_decide(client, headers, buyer, seed_event):
    order_id = await _paid_order(client, headers(buyer), seed_event.id)
    refund = await client.post(
        "/api/v1/refunds",
        json={"order_id": order_id, "reason": "Cannot attend"},
        headers=headers(buyer),
    )

    res = await client.post(
        f"/api/v1/refunds/{refund.json()['id']}/approve", headers=headers(buyer),
    )

    assert res.status_code == 403


async def test_reject_and_listing(client, headers, buyer, other_buyer, admin, seed_event):
    first = await _paid_order(client, headers(buyer), seed_event.id)
    second = await _paid_order(client, headers(other_buyer), seed_event.id)
    mine = await client.post(
        "/api/v1/refunds",
        json={"order_id": first, "reason": "Cannot attend"},
        headers=headers(buyer),
    )
    theirs = await client.post(
        "/api/v1/refunds",
        json={"order_id": second, "reason": "Sick"},
        headers=headers(other_buyer),
    )

    rejected = await client.post(
        f"/api/v1/refunds/{theirs.json()['id']}/reject",
        json={"note": "Past the refund window"},
        headers=headers(admin),
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"

    own = await client.get("/api/v1/refunds", headers=headers(buyer))
    assert [r["id"] for r in own.json()] == [mine.json()["id"]]

    everything = await client.get("/api/v1/refunds", headers=headers(admin))
    assert len(everything.json()) == 2
    pending = await client.get(
        "/api/v1/refunds", params={"status": "pending"}, headers=headers(admin),
    )
    assert [r["id"] for r in pending.json()] == [mine.json()["id"]]

    foreign = await client.get(
        f"/api/v1/refunds/{theirs.json()['id']}", headers=headers(buyer),
    )
    assert foreign.status_code == 403
