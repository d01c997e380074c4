from datetime import date


def _create(client, master, **overrides):
    payload = {
        "supplier_id": master.supplier_id,
        "order_date": date.today().isoformat(),
        "items": [
            {"product_id": master.product_a, "quantity": 10, "unit_cost": "5"},
            {"product_id": master.product_b, "quantity": 5, "unit_cost": "20"},
        ],
    }
    payload.update(overrides)
    return client.post("/v1/purchase-orders", json=payload)


def _sent(client, master):
    po = _create(client, master).json()["data"]
    for step in ("submit", "approve", "send"):
        assert client.post(f"/v1/purchase-orders/{po['id']}/{step}").status_code == 200
    return po


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_create_returns_envelope_with_detail(client, master):
    r = _create(client, master)
    assert r.status_code == 201

    body = r.json()
    assert body["success"] is True
    po = body["data"]
    assert po["status"] == "draft"
    assert po["total_amount"] == 150.0
    assert po["created_by"] == "user-1"
    assert po["supplier"]["id"] == master.supplier_id
    assert [i["quantity_ordered"] for i in po["items"]] == [10, 5]
    assert po["receipts"] == []


def test_missing_actor_header_is_401(client, master):
    r = client.get("/v1/purchase-orders", headers={"X-Actor-Id": ""})
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Missing X-Actor-Id header"}


def test_unknown_order_is_404(client):
    r = client.get("/v1/purchase-orders/999999")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "Purchase order not found"}


def test_invalid_transition_is_409(client, master):
    po = _create(client, master).json()["data"]

    r = client.post(f"/v1/purchase-orders/{po['id']}/approve")
    assert r.status_code == 409
    assert r.json()["success"] is False

    assert client.get(f"/v1/purchase-orders/{po['id']}").json()["data"]["status"] == "draft"


def test_bad_payload_is_400(client, master):
    r = _create(client, master, items=[])
    assert r.status_code == 400
    assert r.json()["success"] is False

    r = _create(client, master, supplier_id=424242)
    assert r.status_code == 400
    assert "Invalid supplier_id" in r.json()["error"]


def test_receive_flow(client, master):
    po = _sent(client, master)
    item_a = po["items"][0]

    r = client.post(
        f"/v1/purchase-orders/{po['id']}/receive",
        json={"items": [{"item_id": item_a["id"], "quantity_received": 6}], "receipt_number": "DR-9"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Items received. Status: partial"
    assert body["data"]["items"][0]["quantity_received"] == 6
    assert body["data"]["receipts"][0]["receipt_number"] == "DR-9"

    inv = client.get(f"/v1/inventory/{master.product_a}").json()["data"]
    assert inv["quantity_on_hand"] == 6
    assert inv["quantity_on_order"] == 4
    assert inv["transactions"][0]["transaction_type"] == "purchase_receive"

    r = client.post(
        f"/v1/purchase-orders/{po['id']}/receive",
        json={"items": [{"item_id": item_a["id"], "quantity_received": 5}]},
    )
    assert r.status_code == 400

    r = client.post(f"/v1/purchase-orders/{po['id']}/file")
    assert r.status_code == 200
    assert r.json()["data"]["delivery_receipt_filed"] is True


def test_edit_hold_cancel(client, master):
    po = _create(client, master).json()["data"]

    r = client.put(
        f"/v1/purchase-orders/{po['id']}",
        json={"notes": "rush", "items": [{"product_id": master.product_a, "quantity": 2, "unit_cost": "7.25"}]},
    )
    assert r.status_code == 200
    assert r.json()["data"]["total_amount"] == 14.5
    assert r.json()["data"]["notes"] == "rush"

    r = client.post(f"/v1/purchase-orders/{po['id']}/hold", json={"notes": "wait"})
    assert r.json()["data"]["status"] == "on_hold"

    r = client.post(f"/v1/purchase-orders/{po['id']}/cancel")
    assert r.json()["data"]["status"] == "cancelled"

    inv = client.get(f"/v1/inventory/{master.product_a}").json()["data"]
    assert inv["quantity_on_order"] == 0


def test_list_pagination_and_stats(client, master):
    for _ in range(3):
        _create(client, master)

    r = client.get("/v1/purchase-orders", params={"page": 2, "limit": 2})
    data = r.json()["data"]
    assert len(data["purchase_orders"]) == 1
    assert data["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}
    assert data["purchase_orders"][0]["item_count"] == 2

    r = client.get("/v1/purchase-orders", params={"status": "sent"})
    assert r.json()["data"]["pagination"]["total"] == 0

    stats = client.get("/v1/purchase-orders/stats").json()["data"]
    assert stats["this_month"]["count"] == 3


def test_delivery_receipt_endpoints(client, master):
    po = _sent(client, master)
    item = po["items"][1]
    client.post(
        f"/v1/purchase-orders/{po['id']}/receive",
        json={"items": [{"item_id": item["id"], "quantity_received": 1}]},
    )

    data = client.get("/v1/delivery-receipts", params={"purchase_order_id": po["id"]}).json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 50, "total": 1, "totalPages": 1}
    receipts = data["delivery_receipts"]
    assert len(receipts) == 1

    r = client.post(f"/v1/delivery-receipts/{receipts[0]['id']}/verify", json={"discrepancy_notes": "short"})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "discrepancy"

    assert client.get("/v1/delivery-receipts/999999").status_code == 404


def test_inventory_endpoints(client, master):
    r = client.post(f"/v1/inventory/{master.product_b}/adjust", json={"adjustment": 4, "notes": "found"})
    assert r.status_code == 200
    assert r.json()["data"]["quantity_on_hand"] == 4

    r = client.post(f"/v1/inventory/{master.product_b}/count", json={"actual_count": 3})
    assert r.json()["data"]["quantity_on_hand"] == 3

    r = client.post(f"/v1/inventory/{master.product_b}/adjust", json={"adjustment": -10})
    assert r.status_code == 400

    check = client.get(f"/v1/inventory/{master.product_b}/ledger-check").json()["data"]
    assert check["ok"] is True
    assert check["entries"] == 2

    txs = client.get(f"/v1/inventory/{master.product_b}/transactions", params={"limit": 1}).json()["data"]
    assert txs["pagination"]["total"] == 2
    assert txs["transactions"][0]["transaction_type"] == "count"

    _create(client, master)
    rebuilt = client.post("/v1/inventory/rebuild-on-order", json={}).json()["data"]["quantity_on_order"]
    assert rebuilt == {str(master.product_a): 10, str(master.product_b): 5}

    stats = client.get("/v1/inventory/stats").json()["data"]
    assert stats["total_products"] == 2
