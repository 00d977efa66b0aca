from datetime import timedelta

from pharmastock.models import Notification, NotificationType
from pharmastock.utils.timezone import today_local


def _create(client, headers, batch_id, quantity, **extra_headers):
    return client.post(
        "/api/sales",
        json={"notes": "walk-in", "items": [{"batch_id": batch_id, "quantity": quantity}]},
        headers={**headers, **extra_headers},
    )


# ---------------------------------------------------------------- auth
def test_missing_token_is_unauthorized(client):
    res = client.get("/api/sales")

    assert res.status_code == 401
    body = res.json()
    assert body["status"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"


def test_garbage_token_is_unauthorized(client):
    res = client.get("/api/sales", headers={"Authorization": "Bearer not-a-jwt"})

    assert res.status_code == 401


def test_seller_cannot_approve(client, auth_headers, make_batch):
    bid = make_batch(on_hand=10)
    sale_id = _create(client, auth_headers("SELLER"), bid, 1).json()["data"]["id"]

    res = client.post(f"/api/sales/{sale_id}/approve", headers=auth_headers("SELLER"))

    assert res.status_code == 403
    assert res.json()["error"]["code"] == "FORBIDDEN"


def test_unknown_role_cannot_create(client, auth_headers, make_batch):
    bid = make_batch(on_hand=10)

    res = _create(client, auth_headers("NURSE"), bid, 1)

    assert res.status_code == 403


# ---------------------------------------------------------------- create
def test_create_returns_pending_sale(client, auth_headers, make_batch, batch_qty):
    bid = make_batch(on_hand=10, unit_price="12.00")

    res = _create(client, auth_headers("SELLER"), bid, 4)

    assert res.status_code == 201
    body = res.json()
    assert body["status"] is True
    sale = body["data"]
    assert sale["status"] == "PENDING"
    assert sale["lines"][0]["quantity"] == 4
    assert sale["lines"][0]["unit_price_snapshot"] == "12.00"
    assert batch_qty(bid) == (10, 4)


def test_create_insufficient_stock_envelope(client, auth_headers, make_batch, batch_qty):
    bid = make_batch(on_hand=3)

    res = _create(client, auth_headers("SELLER"), bid, 5)

    assert res.status_code == 409
    err = res.json()["error"]
    assert err["code"] == "INSUFFICIENT_STOCK"
    assert err["details"] == {"batch_id": bid, "requested": 5, "available": 3}
    assert batch_qty(bid) == (3, 0)


def test_create_validation_errors(client, auth_headers, make_batch):
    bid = make_batch(on_hand=10)
    headers = auth_headers("SELLER")

    empty = client.post("/api/sales", json={"items": []}, headers=headers)
    zero = client.post("/api/sales", json={"items": [{"batch_id": bid, "quantity": 0}]}, headers=headers)

    assert empty.status_code == 400
    assert zero.status_code == 400
    assert zero.json()["error"]["code"] == "VALIDATION_ERROR"
    assert zero.json()["error"]["details"]["errors"]


def test_create_unknown_batch_is_not_found(client, auth_headers):
    res = _create(client, auth_headers("SELLER"), 999, 1)

    assert res.status_code == 404
    assert res.json()["error"]["code"] == "NOT_FOUND"


def test_idempotency_key_replays_the_first_response(client, auth_headers, make_batch, batch_qty):
    bid = make_batch(on_hand=10)
    headers = auth_headers("SELLER")

    first = _create(client, headers, bid, 4, **{"Idempotency-Key": "till-7-0001"})
    second = _create(client, headers, bid, 4, **{"Idempotency-Key": "till-7-0001"})

    assert first.status_code == second.status_code == 201
    assert first.json()["data"] == second.json()["data"]
    assert batch_qty(bid) == (10, 4)


def test_identical_request_without_key_is_collapsed(client, auth_headers, make_batch, batch_qty):
    bid = make_batch(on_hand=10)
    headers = auth_headers("SELLER")

    first = _create(client, headers, bid, 2)
    second = _create(client, headers, bid, 2)

    assert first.json()["data"]["id"] == second.json()["data"]["id"]
    assert batch_qty(bid) == (10, 2)


# ---------------------------------------------------------------- decide
def test_manager_approves(client, auth_headers, make_batch, batch_qty, db):
    bid = make_batch(on_hand=10, threshold=7)
    sale_id = _create(client, auth_headers("SELLER"), bid, 4).json()["data"]["id"]

    res = client.post(
        f"/api/sales/{sale_id}/approve",
        json={"notes": "checked"},
        headers=auth_headers("MANAGER", user_id=9),
    )

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["status"] == "APPROVED"
    assert data["decided_by"] == 9
    assert batch_qty(bid) == (6, 0)
    assert db.query(Notification).filter(
        Notification.notification_type == NotificationType.LOW_STOCK).count() == 1


def test_approve_without_body(client, auth_headers, make_batch):
    bid = make_batch(on_hand=10)
    sale_id = _create(client, auth_headers("SELLER"), bid, 1).json()["data"]["id"]

    res = client.post(f"/api/sales/{sale_id}/approve", headers=auth_headers("ADMIN"))

    assert res.status_code == 200


def test_decline_then_approve_is_a_conflict(client, auth_headers, make_batch, batch_qty):
    bid = make_batch(on_hand=10)
    sale_id = _create(client, auth_headers("SELLER"), bid, 4).json()["data"]["id"]
    manager = auth_headers("MANAGER", user_id=2)

    declined = client.post(f"/api/sales/{sale_id}/decline", json={"reason": "customer left"}, headers=manager)
    again = client.post(f"/api/sales/{sale_id}/approve", headers=manager)

    assert declined.status_code == 200
    assert declined.json()["data"]["decision_reason"] == "customer left"
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "INVALID_STATE_TRANSITION"
    assert batch_qty(bid) == (10, 0)


def test_decline_requires_reason(client, auth_headers, make_batch):
    bid = make_batch(on_hand=10)
    sale_id = _create(client, auth_headers("SELLER"), bid, 1).json()["data"]["id"]

    res = client.post(f"/api/sales/{sale_id}/decline", json={"reason": "  "}, headers=auth_headers("MANAGER"))

    assert res.status_code == 400


def test_approve_missing_sale(client, auth_headers):
    res = client.post("/api/sales/777/approve", headers=auth_headers("MANAGER"))

    assert res.status_code == 404


# ---------------------------------------------------------------- read
def test_get_and_list_sales(client, auth_headers, make_batch):
    bid = make_batch(on_hand=10)
    headers = auth_headers("PHARMACIST", user_id=3)
    sale_id = _create(client, headers, bid, 1).json()["data"]["id"]

    one = client.get(f"/api/sales/{sale_id}", headers=headers)
    listed = client.get("/api/sales", params={"status": "pending"}, headers=headers)
    everything = client.get("/api/sales", params={"status": "all"}, headers=headers)
    bad = client.get("/api/sales", params={"status": "SHIPPED"}, headers=headers)

    assert one.json()["data"]["id"] == sale_id
    assert [s["id"] for s in listed.json()["data"]["items"]] == [sale_id]
    assert everything.json()["data"]["pagination"]["total"] == 1
    assert bad.status_code == 400


def test_product_summary(client, auth_headers, make_batch):
    bid = make_batch(on_hand=10, unit_price="12.00", unit_cost="7.00",
                     generic_name="Paracetamol", trade_name="Crocin")
    seller, manager = auth_headers("SELLER"), auth_headers("MANAGER")
    sale_id = _create(client, seller, bid, 3).json()["data"]["id"]
    client.post(f"/api/sales/{sale_id}/approve", headers=manager)
    _create(client, seller, bid, 1)  # still pending, not counted

    res = client.get("/api/sales/product-summary", params={"period": "daily"}, headers=manager)

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["total_quantity_sold"] == 3
    assert data["most_sold_item"] == "Paracetamol (Crocin)"
    assert data["total_revenue"] == "36.00"
    assert data["total_profit"] == "15.00"
    assert data["products"][0]["avg_unit_price"] == "12.00"


def test_product_summary_custom_period_needs_dates(client, auth_headers):
    res = client.get("/api/sales/product-summary", params={"period": "custom"}, headers=auth_headers("MANAGER"))

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


# ---------------------------------------------------------------- notifications
def test_notification_endpoints(client, auth_headers, make_batch):
    make_batch(on_hand=10, expiry=today_local() + timedelta(days=2))
    make_batch(on_hand=10, expiry=today_local() - timedelta(days=2))
    manager, seller = auth_headers("MANAGER"), auth_headers("SELLER")

    assert client.post("/api/notifications/expiry-scan", headers=seller).status_code == 403

    scan = client.post("/api/notifications/expiry-scan", headers=manager)
    assert scan.json()["data"] == {"created": 2}

    counts = client.get("/api/notifications/counts", headers=seller).json()["data"]
    assert counts["total"] == 2
    assert counts["unread"] == 2
    assert counts["by_type"]["EXPIRED"] == 1
    assert counts["by_severity"]["HIGH"] == 1

    listing = client.get("/api/notifications", params={"notification_type": "NEAR_EXPIRY"}, headers=seller)
    items = listing.json()["data"]["items"]
    assert len(items) == 1

    read = client.patch(f"/api/notifications/{items[0]['id']}/read", headers=seller)
    assert read.json()["data"]["is_read"] is True

    read_all = client.patch("/api/notifications/read-all", headers=seller)
    assert read_all.json()["data"] == {"updated": 1}

    missing = client.patch("/api/notifications/9999/read", headers=seller)
    assert missing.status_code == 404


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"
