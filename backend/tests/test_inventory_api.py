"""
HTTP tests for /api/inventory.
"""

import pytest


def test_adjust_add(client, db_session, shampoo, location_a, set_stock, stock_of):
    set_stock(shampoo, location_a, 10)

    response = client.post("/api/inventory/adjust", json={
        "product_id": shampoo.id,
        "location_id": location_a.id,
        "adjustment_type": "add",
        "quantity": 50,
        "reason": "Delivery",
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body["previous_stock"] == 10
    assert body["new_stock"] == 60
    assert body["adjustment"] == 50
    assert body["product_location"]["stock"] == 60
    assert stock_of(shampoo, location_a) == 60


def test_adjust_remove_insufficient_returns_409(client, db_session, shampoo, location_a, set_stock, stock_of):
    set_stock(shampoo, location_a, 10)

    response = client.post("/api/inventory/adjust", json={
        "product_id": shampoo.id,
        "location_id": location_a.id,
        "adjustment_type": "remove",
        "quantity": 20,
        "reason": "Count correction",
    })

    assert response.status_code == 409
    body = response.get_json()
    assert body["current_stock"] == 10
    assert body["requested_quantity"] == 20
    assert "Insufficient stock" in body["error"]
    assert stock_of(shampoo, location_a) == 10


def test_adjust_allow_negative_config(app, client, db_session, shampoo, location_a, set_stock, stock_of):
    set_stock(shampoo, location_a, 1)
    app.config["ALLOW_NEGATIVE_STOCK"] = True
    try:
        response = client.post("/api/inventory/adjust", json={
            "product_id": shampoo.id,
            "location_id": location_a.id,
            "adjustment_type": "remove",
            "quantity": 3,
            "reason": "Backorder",
        })
    finally:
        app.config["ALLOW_NEGATIVE_STOCK"] = False

    assert response.status_code == 200
    assert stock_of(shampoo, location_a) == -2


def test_adjust_missing_fields_returns_400(client, db_session, shampoo, location_a):
    response = client.post("/api/inventory/adjust", json={
        "product_id": shampoo.id,
        "location_id": location_a.id,
        "adjustment_type": "add",
    })

    assert response.status_code == 400
    assert "quantity" in response.get_json()["error"]
    assert "reason" in response.get_json()["error"]


def test_adjust_unknown_product_returns_404(client, db_session, location_a):
    response = client.post("/api/inventory/adjust", json={
        "product_id": 424242,
        "location_id": location_a.id,
        "adjustment_type": "add",
        "quantity": 1,
        "reason": "x",
    })

    assert response.status_code == 404


def test_adjust_outside_user_locations_returns_403(client, db_session, shampoo, location_a, location_b):
    response = client.post(
        "/api/inventory/adjust",
        json={
            "product_id": shampoo.id,
            "location_id": location_b.id,
            "adjustment_type": "add",
            "quantity": 1,
            "reason": "x",
        },
        headers={
            "X-User-Id": "7",
            "X-User-Name": "Branch Manager",
            "X-User-Locations": str(location_a.id),
        },
    )

    assert response.status_code == 403


def test_malformed_locations_header_returns_400(client, db_session):
    response = client.get("/api/inventory/audit", headers={"X-User-Locations": "downtown"})

    assert response.status_code == 400


def test_transfer_endpoint(client, db_session, shampoo, location_a, location_b, set_stock, stock_of):
    set_stock(shampoo, location_a, 60)
    set_stock(shampoo, location_b, 8)

    response = client.post("/api/inventory/transfer", json={
        "product_id": shampoo.id,
        "from_location_id": location_a.id,
        "to_location_id": location_b.id,
        "quantity": 5,
        "notes": "Weekly rebalance",
    })

    assert response.status_code == 201
    transfer = response.get_json()["transfer"]
    assert transfer["from_location"]["new_stock"] == 55
    assert transfer["to_location"]["new_stock"] == 13
    assert transfer["reference"].startswith("TXF-")
    assert stock_of(shampoo, location_a) == 55
    assert stock_of(shampoo, location_b) == 13

    listing = client.get(f"/api/inventory/transfer?product_id={shampoo.id}")
    assert listing.status_code == 200
    assert [t["quantity"] for t in listing.get_json()["transfers"]] == [5]


def test_transfer_insufficient_returns_409(client, db_session, shampoo, location_a, location_b, set_stock, stock_of):
    set_stock(shampoo, location_a, 2)
    set_stock(shampoo, location_b, 8)

    response = client.post("/api/inventory/transfer", json={
        "product_id": shampoo.id,
        "from_location_id": location_a.id,
        "to_location_id": location_b.id,
        "quantity": 5,
    })

    assert response.status_code == 409
    assert stock_of(shampoo, location_a) == 2
    assert stock_of(shampoo, location_b) == 8


def test_transfer_same_location_returns_400(client, db_session, shampoo, location_a, set_stock):
    set_stock(shampoo, location_a, 10)

    response = client.post("/api/inventory/transfer", json={
        "product_id": shampoo.id,
        "from_location_id": location_a.id,
        "to_location_id": location_a.id,
        "quantity": 1,
    })

    assert response.status_code == 400


def test_stock_levels_and_audit(client, db_session, shampoo, location_a, location_b, set_stock):
    set_stock(shampoo, location_a, 4)
    set_stock(shampoo, location_b, 6)
    client.post("/api/inventory/adjust", json={
        "product_id": shampoo.id,
        "location_id": location_a.id,
        "adjustment_type": "add",
        "quantity": 1,
        "reason": "Found one",
    })

    levels = client.get(f"/api/inventory/stock/{shampoo.id}").get_json()
    assert levels["total_stock"] == 11
    assert {row["location_id"]: row["stock"] for row in levels["locations"]} == {
        location_a.id: 5,
        location_b.id: 6,
    }

    audit = client.get(f"/api/inventory/audit?product_id={shampoo.id}").get_json()["audit"]
    assert len(audit) == 1
    assert audit[0]["previous_stock"] == 4
    assert audit[0]["new_stock"] == 5


def test_low_stock_uses_configured_threshold(client, db_session, shampoo, location_a, location_b, set_stock):
    set_stock(shampoo, location_a, 5)
    set_stock(shampoo, location_b, 6)

    body = client.get("/api/inventory/low-stock").get_json()

    assert body["threshold"] == 5
    assert [item["location_id"] for item in body["items"]] == [location_a.id]


def test_report_endpoint(client, db_session, shampoo, location_a, set_stock):
    set_stock(shampoo, location_a, 3)

    body = client.get("/api/inventory/report").get_json()

    assert body["total_units"] == 3
    assert body["negative_stock"] == []


def test_adjust_multi_location_endpoint(client, db_session, shampoo, location_a, location_b, set_stock, stock_of):
    set_stock(shampoo, location_a, 8)

    response = client.post("/api/inventory/adjust-multi-location", json={
        "product_id": shampoo.id,
        "adjustments": [
            {"location_id": location_a.id, "operation": "add", "quantity": 2},
            {"location_id": location_b.id, "operation": "set", "new_stock": 5},
        ],
        "reason": "Stocktake",
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body["product_name"] == "Shampoo"
    assert body["summary"]["total_new_stock"] == 15
    assert stock_of(shampoo, location_a) == 10
    assert stock_of(shampoo, location_b) == 5


def test_adjust_multi_location_error_codes(client, db_session, shampoo, location_a, set_stock, stock_of):
    set_stock(shampoo, location_a, 1)
    url = "/api/inventory/adjust-multi-location"

    negative = client.post(url, json={
        "product_id": shampoo.id,
        "adjustments": [{"location_id": location_a.id, "operation": "set", "new_stock": -4}],
        "reason": "Stocktake",
    })
    unknown_location = client.post(url, json={
        "product_id": shampoo.id,
        "adjustments": [{"location_id": 9999, "operation": "add", "quantity": 1}],
        "reason": "Stocktake",
    })
    insufficient = client.post(url, json={
        "product_id": shampoo.id,
        "adjustments": [{"location_id": location_a.id, "operation": "remove", "quantity": 2}],
        "reason": "Stocktake",
    })
    missing_reason = client.post(url, json={"product_id": shampoo.id, "adjustments": []})

    assert negative.status_code == 400
    assert unknown_location.status_code == 404
    assert insufficient.status_code == 409
    assert missing_reason.status_code == 400
    assert stock_of(shampoo, location_a) == 1


@pytest.mark.parametrize("url", ["/api/inventory/audit", "/api/inventory/transfer", "/api/sales", "/api/clients"])
@pytest.mark.parametrize("limit", ["0", "-1", "abc"])
def test_non_positive_limit_returns_400(client, db_session, url, limit):
    response = client.get(f"{url}?limit={limit}")

    assert response.status_code == 400


def test_limit_is_capped(client, db_session, shampoo, location_a):
    for _ in range(3):
        client.post("/api/inventory/adjust", json={
            "product_id": shampoo.id,
            "location_id": location_a.id,
            "adjustment_type": "add",
            "quantity": 1,
            "reason": "Delivery",
        })

    assert len(client.get("/api/inventory/audit?limit=2").get_json()["audit"]) == 2
    assert len(client.get("/api/inventory/audit?limit=100000").get_json()["audit"]) == 3
