from datetime import datetime

from erp_core.app import models, schemas


STOCK_PAYLOAD = {
    "barcodeId": "BC-API-1",
    "type": "Kraft",
    "gsm": 120,
    "width": 1400,
    "length": 100,
    "weight": 600,
    "containerNo": "MSKU1234567",
}


def create_stock(client, **overrides):
    response = client.post("/api/inventory/stock", json={**STOCK_PAYLOAD, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


def test_create_stock_assigns_roll_no(client):
    stock = create_stock(client)
    assert stock["rollNo"] == f"SHZ{datetime.utcnow():%y%m}0001"
    assert stock["remainingLength"] == 100
    assert stock["inspected"] is False
    assert stock["isSold"] is False

    nxt = client.get("/api/inventory/stock/generate-roll-no").json()
    assert nxt == {"rollNo": f"SHZ{datetime.utcnow():%y%m}0002"}


def test_create_stock_rejects_bad_input(client):
    response = client.post("/api/inventory/stock", json={**STOCK_PAYLOAD, "length": -1})
    assert response.status_code == 400
    assert "length" in response.json()["error"]

    create_stock(client)
    duplicate = client.post("/api/inventory/stock", json=STOCK_PAYLOAD)
    assert duplicate.status_code == 409


def test_divide_and_overdraw(client):
    stock = create_stock(client)

    response = client.post(
        "/api/inventory/divided/new",
        json={"stockId": stock["id"], "meterPerRoll": 30, "rollCount": 3},
    )
    assert response.status_code == 201
    rolls = response.json()
    assert [r["rollNo"] for r in rolls] == [stock["rollNo"] + s for s in "ABC"]
    assert all(r["barcodeId"] == r["rollNo"] for r in rolls)

    overdraw = client.post(
        "/api/inventory/divided/new",
        json={"stockId": stock["id"], "meterPerRoll": 30, "rollCount": 1},
    )
    assert overdraw.status_code == 400
    body = overdraw.json()
    assert body["error"] == "Total length exceeds available stock length"
    assert body["requested"] == 30
    assert body["available"] == 10

    refreshed = client.get(f"/api/inventory/stock/{stock['id']}").json()
    assert refreshed["remainingLength"] == 10


def test_divide_missing_stock_is_404(client):
    response = client.post(
        "/api/inventory/divided/new",
        json={"stockId": 999, "meterPerRoll": 10, "rollCount": 1},
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Stock not found"}


def test_divide_validates_payload(client):
    stock = create_stock(client)
    response = client.post(
        "/api/inventory/divided/new",
        json={"stockId": stock["id"], "meterPerRoll": 0, "rollCount": 1},
    )
    assert response.status_code == 400
    assert "error" in response.json()


def test_sub_millimetre_lengths_are_400(client):
    stock = create_stock(client)
    response = client.post(
        "/api/inventory/divided/new",
        json={"stockId": stock["id"], "meterPerRoll": 0.0001, "rollCount": 2},
    )
    assert response.status_code == 400
    assert "meterPerRoll" in response.json()["error"]

    response = client.post("/api/inventory/stock", json={**STOCK_PAYLOAD, "barcodeId": "BC-API-2", "length": 0.0001})
    assert response.status_code == 400
    assert "length" in response.json()["error"]

    refreshed = client.get(f"/api/inventory/stock/{stock['id']}").json()
    assert refreshed["remainingLength"] == 100


def test_bulk_delete_divided_restores_length(client):
    stock = create_stock(client)
    rolls = client.post(
        "/api/inventory/divided/new",
        json={"stockId": stock["id"], "meterPerRoll": 20, "rollCount": 4},
    ).json()

    response = client.request(
        "DELETE", "/api/inventory/divided/bulk-delete", json={"ids": [rolls[0]["id"], rolls[1]["id"]]}
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}

    refreshed = client.get(f"/api/inventory/stock/{stock['id']}").json()
    assert refreshed["remainingLength"] == 60
    remaining = client.get("/api/inventory/divided").json()
    assert sorted(r["rollNo"] for r in remaining) == [stock["rollNo"] + "C", stock["rollNo"] + "D"]


def test_bulk_delete_without_ids(client):
    response = client.request("DELETE", "/api/inventory/divided/bulk-delete", json={"ids": []})
    assert response.status_code == 400
    assert response.json() == {"error": "No IDs provided for deletion"}

    response = client.request("DELETE", "/api/inventory/stock/bulk-delete", json={})
    assert response.status_code == 400


def test_stock_with_children_is_protected(client):
    stock = create_stock(client)
    client.post("/api/inventory/divided/new", json={"stockId": stock["id"], "meterPerRoll": 10, "rollCount": 1})

    response = client.delete(f"/api/inventory/stock/{stock['id']}")
    assert response.status_code == 400
    assert response.json()["rollNumbers"] == [stock["rollNo"]]


def test_delete_and_bulk_delete_stock(client):
    first = create_stock(client)
    second = create_stock(client, barcodeId="BC-API-2")
    third = create_stock(client, barcodeId="BC-API-3")

    assert client.delete(f"/api/inventory/stock/{first['id']}").json() == {"success": True}
    response = client.request(
        "DELETE", "/api/inventory/stock/bulk-delete", json={"ids": [second["id"], third["id"]]}
    )
    assert response.json() == {"success": True, "deleted": 2}
    assert client.get("/api/inventory/stock").json() == []


def test_barcode_validation(client):
    stock = create_stock(client)
    rolls = client.post(
        "/api/inventory/divided/new",
        json={"stockId": stock["id"], "meterPerRoll": 10, "rollCount": 1},
    ).json()

    found = client.get("/api/inventory/stock/validate", params={"barcode": "BC-API-1"})
    assert found.status_code == 200
    assert found.json()["id"] == stock["id"]

    missing = client.get("/api/inventory/stock/validate", params={"barcode": "nope"})
    assert missing.status_code == 404
    assert missing.json() == {"error": "Stock not found with this barcode"}

    divided = client.get("/api/inventory/divided/validate", params={"barcodeId": rolls[0]["barcodeId"]})
    assert divided.json()["stockId"] == stock["id"]


def test_update_stock_length(client):
    stock = create_stock(client)
    client.post("/api/inventory/divided/new", json={"stockId": stock["id"], "meterPerRoll": 40, "rollCount": 1})

    response = client.put(f"/api/inventory/stock/{stock['id']}", json={"length": 120, "note": "re-measured"})
    assert response.status_code == 200
    assert response.json()["remainingLength"] == 80

    too_short = client.put(f"/api/inventory/stock/{stock['id']}", json={"length": 30})
    assert too_short.status_code == 400


def test_list_stock_filtered_by_ids(client):
    first = create_stock(client)
    create_stock(client, barcodeId="BC-API-2")

    listed = client.get("/api/inventory/stock", params={"ids": str(first["id"])}).json()
    assert [s["id"] for s in listed] == [first["id"]]

    bad = client.get("/api/inventory/stock", params={"ids": "1,x"})
    assert bad.status_code == 400


def test_anonymous_requests_are_rejected(anon_client):
    response = anon_client.get("/api/inventory/stock")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_role_without_permission_is_forbidden(make_client, make_user):
    shipper = make_user("shipper", "Shipping")
    response = make_client(shipper).post("/api/inventory/stock", json=STOCK_PAYLOAD)
    assert response.status_code == 403
    assert "inventory:create" in response.json()["error"]


def test_inspection_api_records_inspector(client, make_client, inspector, db):
    stock = create_stock(client)
    qc = make_client(inspector)

    response = qc.post("/api/inventory/inspection/stock", json={"stockId": stock["id"], "note": "clean"})
    assert response.status_code == 200
    body = response.json()
    assert body["stock"]["inspected"] is True
    assert body["stock"]["inspectedById"] == inspector.id
    assert body["log"]["userName"] == "Quality Checker"
    assert body["log"]["itemIdentifier"] == stock["rollNo"]

    assert qc.get("/api/inventory/stock/uninspected").json() == []

    logs = qc.get("/api/inventory/logs", params={"itemType": "stock"}).json()
    assert logs["pagination"]["total"] == 1
    assert logs["pagination"]["totalPages"] == 1
    assert logs["data"][0]["note"] == "clean"
    assert db.query(models.InspectionLog).count() == 1


def test_inspection_api_for_divided(client, make_client, inspector):
    stock = create_stock(client)
    (roll,) = client.post(
        "/api/inventory/divided/new",
        json={"stockId": stock["id"], "meterPerRoll": 10, "rollCount": 1},
    ).json()

    qc = make_client(inspector)
    assert [r["id"] for r in qc.get("/api/inventory/divided/uninspected").json()] == [roll["id"]]

    response = qc.post("/api/inventory/inspection/divided", json={"dividedId": roll["id"]})
    assert response.status_code == 200
    assert response.json()["divided"]["inspected"] is True
    assert response.json()["log"]["type"] == "divided_inspected"


def test_inspection_api_missing_roll(make_client, inspector):
    response = make_client(inspector).post("/api/inventory/inspection/stock", json={"stockId": 42})
    assert response.status_code == 404


def test_payload_models_accept_camel_and_snake_case(make_stock):
    camel = schemas.DivideRequest.model_validate({"stockId": 1, "meterPerRoll": 2.5, "rollCount": 2})
    snake = schemas.DivideRequest.model_validate({"stock_id": 1, "meter_per_roll": 2.5, "roll_count": 2})
    assert camel == snake
    assert camel.model_dump(by_alias=True) == {"stockId": 1, "meterPerRoll": 2.5, "rollCount": 2, "note": None}

    out = schemas.StockOut.model_validate(make_stock(length=80))
    assert out.model_dump(by_alias=True)["remainingLength"] == 80
