"""
HTTP surface tests through the Flask test client.

Checks status codes, error codes and tenant scoping; business rules are
covered in the service tests.
"""

import pytest

from ordering.services import stock_ledger_service


def url(org, path):
    return f"/api/{org.code}{path}"


def test_health(client, db_session):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json["checks"]["database"]["status"] == "healthy"


def test_unknown_org_is_not_found(client, db_session):
    response = client.get("/api/NOPE/stores/1/catalog")

    assert response.status_code == 404
    assert response.json["code"] == "NOT_FOUND"


def test_inactive_org_is_not_found(client, db_session, org_a, store_a):
    org_a.is_active = False
    db_session.commit()

    response = client.get(url(org_a, f"/stores/{store_a.id}/cart"))

    assert response.status_code == 404


def test_other_tenant_store_is_not_found(client, org_a, org_b, store_b):
    response = client.get(url(org_a, f"/stores/{store_b.id}/catalog"))

    assert response.status_code == 404
    assert response.json["code"] == "NOT_FOUND"


def test_catalog(client, org_a, stocked, product_a):
    response = client.get(url(org_a, f"/stores/{stocked.id}/catalog"))

    assert response.status_code == 200
    products = {p["id"]: p for p in response.json["products"]}
    assert products[product_a.id]["available_packs"] == 10


def test_cart_change_and_errors(client, org_a, stocked, product_a):
    path = url(org_a, f"/stores/{stocked.id}/cart/{product_a.id}")

    ok = client.post(path, json={"delta": 4})
    assert ok.status_code == 200
    assert ok.json["quantity"] == 4
    assert ok.json["available_packs"] == 6
    assert ok.json["cart"]["total_cents"] == 4000

    short = client.post(path, json={"delta": 7})
    assert short.status_code == 409
    assert short.json["code"] == "INSUFFICIENT_STOCK"
    assert short.json["details"]["available"] == 6

    assert client.post(path, json={}).status_code == 400
    assert client.post(path, json={"delta": 1.5}).status_code == 400
    assert client.post(path, json={"delta": -5}).status_code == 400

    cart = client.get(url(org_a, f"/stores/{stocked.id}/cart")).json
    assert cart["lines"][0]["quantity"] == 4


def test_cart_unallocated_product_conflict(client, org_a, store_a, product_a):
    response = client.post(
        url(org_a, f"/stores/{store_a.id}/cart/{product_a.id}"), json={"delta": 1},
    )

    assert response.status_code == 409
    assert response.json["code"] == "ALLOCATION_CONFLICT"


def test_cart_remove_and_clear(client, org_a, stocked, product_a, product_a2):
    base = url(org_a, f"/stores/{stocked.id}/cart")
    client.post(f"{base}/{product_a.id}", json={"delta": 2})
    client.post(f"{base}/{product_a2.id}", json={"delta": 2})

    after_remove = client.delete(f"{base}/{product_a.id}")
    assert after_remove.status_code == 200
    assert [l["product_id"] for l in after_remove.json["lines"]] == [product_a2.id]

    cleared = client.delete(base)
    assert cleared.status_code == 200
    assert cleared.json["lines"] == []
    assert stock_ledger_service.get_available_packs(product_a2.id, stocked.id) == 10


def test_submit_confirmed_then_batch(client, org_a, stocked, product_a):
    client.post(url(org_a, f"/stores/{stocked.id}/cart/{product_a.id}"), json={"delta": 2})

    response = client.post(url(org_a, f"/stores/{stocked.id}/orders"), headers={"X-Actor": "buyer"})

    assert response.status_code == 201
    order = response.json["order"]
    assert order["status"] == "confirmed"
    assert order["created_by"] == "buyer"

    batch = client.post(url(org_a, "/orders/status"), json={
        "order_ids": [order["order_id"]],
        "status": "on_hold",
    })
    assert batch.status_code == 200
    assert batch.json["results"][0]["ok"] is True

    detail = client.get(url(org_a, f"/orders/{order['order_id']}")).json
    assert detail["status"] == "on_hold"
    assert [e["to_status"] for e in detail["events"]] == ["confirmed", "on_hold"]


def test_submit_over_budget_is_202_and_approvable(client, org_a, stocked, product_a):
    limits = client.put(url(org_a, f"/stores/{stocked.id}/limits"), json={
        "monthly_expense_limit_cents": 1500,
        "budget_limit_enabled": True,
    })
    assert limits.status_code == 200
    client.post(url(org_a, f"/stores/{stocked.id}/cart/{product_a.id}"), json={"delta": 2})

    response = client.post(url(org_a, f"/stores/{stocked.id}/orders"))

    assert response.status_code == 202
    assert response.json["code"] == "LIMIT_EXCEEDED"
    assert response.json["evaluation"]["exceed_amount"] == 500
    order_id = response.json["order"]["order_id"]
    assert response.json["order"]["status"] == "approval_pending"

    approved = client.post(url(org_a, f"/orders/{order_id}/approve"), json={"note": "ok this month"})
    assert approved.status_code == 200
    assert approved.json["order"]["status"] == "confirmed"

    again = client.post(url(org_a, f"/orders/{order_id}/approve"))
    assert again.status_code == 409
    assert again.json["code"] == "ILLEGAL_TRANSITION"

    budget = client.get(url(org_a, f"/stores/{stocked.id}/budget")).json
    assert budget["current_month_amount_cents"] == 2000
    assert budget["remaining_budget_cents"] == -500


def test_submit_empty_cart_is_400(client, org_a, stocked):
    response = client.post(url(org_a, f"/stores/{stocked.id}/orders"))

    assert response.status_code == 400
    assert response.json["code"] == "VALIDATION_ERROR"


def test_reject_and_list(client, org_a, stocked, product_a):
    client.post(url(org_a, f"/stores/{stocked.id}/cart/{product_a.id}"), json={"delta": 1})
    order_id = client.post(url(org_a, f"/stores/{stocked.id}/orders")).json["order"]["order_id"]

    rejected = client.post(url(org_a, f"/orders/{order_id}/reject"), json={"sedis": True})
    assert rejected.json["order"]["status"] == "sedis_rejected"

    listed = client.get(url(org_a, "/orders"), query_string={"status": "sedis_rejected"}).json
    assert [o["order_id"] for o in listed] == [order_id]
    assert client.get(url(org_a, "/orders"), query_string={"status": "bogus"}).status_code == 400
    store_orders = client.get(url(org_a, f"/stores/{stocked.id}/orders")).json
    assert len(store_orders) == 1


def test_limits_validation(client, org_a, store_a):
    path = url(org_a, f"/stores/{store_a.id}/limits")

    assert client.put(path, json={"budget_limit_enabled": True}).status_code == 400
    assert client.put(path, json={"monthly_order_limit": -1}).status_code == 400
    assert client.put(path, json={"version_id": 5}).status_code == 400

    ok = client.put(path, json={"monthly_order_limit": 3, "order_limit_enabled": True})
    assert ok.status_code == 200
    assert ok.json["monthly_order_limit"] == 3


def test_allocation_routes(client, org_a, store_a, store_a2, product_a):
    body = {"product_ids": [product_a.id], "store_ids": [store_a.id, store_a2.id]}

    created = client.post(url(org_a, "/allocations"), json=body)
    assert created.json == {"created": 2, "existing": 0}

    removed = client.delete(url(org_a, "/allocations"), json={
        "product_ids": [product_a.id], "store_ids": [store_a2.id],
    })
    assert removed.json == {"removed": 1}

    stores = client.get(url(org_a, f"/products/{product_a.id}/allocations")).json
    assert stores["store_ids"] == [store_a.id]
    products = client.get(url(org_a, f"/stores/{store_a.id}/allocations")).json
    assert products["product_ids"] == [product_a.id]

    assert client.post(url(org_a, "/allocations"), json={"product_ids": []}).status_code == 400


def test_variant_routes(client, org_a, product_a, product_a2):
    linked = client.post(
        url(org_a, f"/products/{product_a.id}/variants"), json={"variant_ids": [product_a2.id]},
    )
    assert linked.json["variant_ids"] == [product_a2.id]

    unlinked = client.delete(url(org_a, f"/products/{product_a.id}/variants/{product_a2.id}"))
    assert unlinked.json == {"removed": True, "variant_ids": []}


def test_stock_routes(client, org_a, store_a, product_a):
    restocked = client.post(url(org_a, "/stock/restock"), json={
        "product_id": product_a.id, "store_id": store_a.id, "packs": 5,
    })
    assert restocked.status_code == 201
    assert restocked.json["stock"]["total_packs"] == 5

    refused = client.post(url(org_a, "/stock/adjust"), json={
        "product_id": product_a.id, "store_id": store_a.id, "delta": -6,
    })
    assert refused.status_code == 409
    assert refused.json["code"] == "INSUFFICIENT_STOCK"

    adjusted = client.post(url(org_a, "/stock/adjust"), json={
        "product_id": product_a.id, "store_id": store_a.id, "delta": -2, "reference": "damaged",
    })
    assert adjusted.status_code == 200
    assert adjusted.json["stock"]["available_packs"] == 3

    above_total = client.post(url(org_a, "/stock/adjust"), json={
        "product_id": product_a.id, "store_id": store_a.id, "delta": 3,
    })
    assert above_total.status_code == 400
    assert above_total.json["code"] == "VALIDATION_ERROR"

    level =client.get(url(org_a, f"/stock/{product_a.id}"), query_string={"store_id": store_a.id}).json
    assert level["available_packs"] == 3
    assert [m["kind"] for m in level["movements"]] == ["ADJUST", "RESTOCK"]

    assert client.get(url(org_a, f"/stock/{product_a.id}")).status_code == 400


@pytest.mark.parametrize("origin, allowed", [
    ("http://localhost:5173", True),
    ("http://evil.example", False),
])
def test_cors_headers(client, db_session, origin, allowed):
    response = client.get("/api/health", headers={"Origin": origin})

    assert ("Access-Control-Allow-Origin" in response.headers) is allowed
