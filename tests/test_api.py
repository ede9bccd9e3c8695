import csv
import io

from sqlalchemy.exc import OperationalError

from paint_inventory import crud

ADMIN = "admin123"


def _create(client, **fields):
    body = {"name": "Eggshell White", "quantity": 20, "userName": ADMIN}
    body.update(fields)
    return client.post("/api/items", json=body)


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["timestamp"]


def test_root_lists_endpoints(client):
    assert "/api/items" in client.get("/").json()["endpoints"]


def test_create_item_with_generated_id(client):
    response = _create(client, location="Bin 1", price=24.99, type="paint")

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    item = body["item"]
    assert item["id"] == "H66AAA00001"
    assert item["minQuantity"] is None
    assert item["lastScannedBy"] == "Admin"
    assert item["price"] == 24.99


def test_create_requires_admin(client):
    response = _create(client, userName="Dana")

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Only admin can add paints."}


def test_create_duplicate_custom_id(client):
    _create(client, id="P-1")

    response = _create(client, id="P-1")

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "already in use" in response.json()["error"]


def test_create_invalid_fields(client):
    assert _create(client, name="  ").status_code == 400
    assert _create(client, type="glitter").status_code == 400


def test_get_and_list_items(client):
    _create(client, id="B")
    _create(client, id="A")

    assert [item["id"] for item in client.get("/api/items").json()] == ["A", "B"]
    assert client.get("/api/items/A").json()["name"] == "Eggshell White"
    assert client.get("/api/items/missing").status_code == 404


def test_end_to_end_check_out(client):
    _create(client, id="H66AAA00001")

    response = client.post("/api/items/H66AAA00001/check-out", json={"quantity": 5, "userName": "Dana"})

    assert response.status_code == 200
    body = response.json()
    assert body["item"]["quantity"] == 15
    assert body["entry"]["action"] == "check_out"
    assert body["entry"]["details"] == {"quantityChange": 5, "oldQuantity": 20, "newQuantity": 15}
    assert client.get("/api/audit", params={"userName": ADMIN}).json()[0]["id"] == body["entry"]["id"]


def test_check_in_and_adjust(client):
    _create(client, id="P-1")

    assert client.post("/api/items/P-1/check-in", json={"quantity": 4, "userName": "Dana"}).json()["item"]["quantity"] == 24
    assert client.post("/api/items/P-1/check-in", json={"quantity": 0, "userName": "Dana"}).status_code == 400
    assert client.post("/api/items/P-1/adjust", json={"quantity": 3, "userName": "Dana"}).status_code == 403
    assert client.post("/api/items/P-1/adjust", json={"quantity": 3, "userName": ADMIN}).json()["item"]["quantity"] == 3
    assert client.post("/api/items/nope/check-out", json={"quantity": 1}).status_code == 404


def test_put_with_check_out_hint_by_user(client):
    item = _create(client, id="P-1").json()["item"]
    item.update({"quantity": 15, "_actionType": "check_out", "userName": "Dana"})

    response = client.put("/api/items/P-1", json=item)

    assert response.status_code == 200
    assert response.json()["item"]["quantity"] == 15
    entry = client.get("/api/audit", params={"userName": "Dana"}).json()[0]
    assert entry["action"] == "check_out"
    assert entry["details"]["quantityChange"] == 5
    assert entry["userName"] == "Dana"


def test_refused_put_with_hint_moves_no_stock(client):
    _create(client, id="P-1")

    response = client.put(
        "/api/items/P-1",
        json={"quantity": 15, "_actionType": "check_out", "location": "Bin 9", "userName": "Dana"},
    )

    assert response.status_code == 403
    assert client.get("/api/items/P-1").json()["quantity"] == 20
    assert [entry["action"] for entry in client.get("/api/audit", params={"userName": ADMIN}).json()] == ["add"]


def test_put_edit_requires_admin(client):
    _create(client, id="P-1")

    assert client.put("/api/items/P-1", json={"location": "Bin 9", "userName": "Dana"}).status_code == 403
    response = client.put("/api/items/P-1", json={"location": "Bin 9", "userName": ADMIN})
    assert response.json()["item"]["location"] == "Bin 9"


def test_delete_item(client):
    _create(client, id="P-1")

    assert client.request("DELETE", "/api/items/P-1", json={"userName": "Dana"}).status_code == 403
    response = client.request("DELETE", "/api/items/P-1", json={"userName": ADMIN})
    assert response.json() == {"success": True, "error": None}
    assert client.get("/api/items/P-1").status_code == 404
    assert client.request("DELETE", "/api/items/P-1", json={"userName": ADMIN}).status_code == 404


def test_change_id(client):
    _create(client, id="OLD1")

    response = client.post("/api/items/OLD1/change-id", json={"newId": "h66aaa00077", "userName": ADMIN})

    assert response.json() == {"success": True, "itemId": "H66AAA00077"}
    assert client.get("/api/items/OLD1").status_code == 404
    assert client.get("/api/items/H66AAA00077").json()["quantity"] == 20
    last = client.get("/api/items/OLD1/last-action").json()
    assert last["action"] == "change_id"
    assert last["details"] == {"oldId": "OLD1", "newId": "H66AAA00077"}


def test_next_id_settings(client):
    assert client.get("/api/settings/next-id").json() == {"nextId": 1, "nextIdFormatted": "H66AAA00001"}

    assert client.post("/api/settings/next-id", json={"nextId": 42, "userName": "Dana"}).status_code == 403
    assert client.post("/api/settings/next-id", json={"nextId": "", "userName": ADMIN}).status_code == 400
    assert client.post("/api/settings/next-id", json={"nextId": 42, "userName": ADMIN}).json()["success"] is True
    assert client.get("/api/settings/next-id").json() == {"nextId": 42, "nextIdFormatted": "H66AAA00042"}

    client.post("/api/settings/next-id", json={"nextId": "SPECIAL", "userName": ADMIN})
    assert client.get("/api/settings/next-id").json() == {"nextId": "SPECIAL", "nextIdFormatted": "SPECIAL"}
    assert _create(client).json()["item"]["id"] == "SPECIAL"
    assert _create(client).json()["item"]["id"] == "H66AAA00043"


def test_next_id_past_the_code_range_is_rejected(client):
    response = client.post("/api/settings/next-id", json={"nextId": 1757600001, "userName": ADMIN})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert client.get("/api/settings/next-id").json() == {"nextId": 1, "nextIdFormatted": "H66AAA00001"}


def test_min_quantity_settings(client):
    assert client.get("/api/settings/min-quantity").json() == {"minQuantity": 30}

    assert client.post("/api/settings/min-quantity", json={"minQuantity": "-1", "userName": ADMIN}).status_code == 400
    assert client.post("/api/settings/min-quantity", json={"minQuantity": 10, "userName": "Dana"}).status_code == 403
    assert client.post("/api/settings/min-quantity", json={"minQuantity": "10", "userName": ADMIN}).status_code == 200
    assert client.get("/api/settings/min-quantity").json() == {"minQuantity": 10}

    entry = client.get("/api/audit", params={"userName": ADMIN}).json()[0]
    assert entry["action"] == "set_min_quantity"
    assert entry["details"] == {"minQuantity": 10, "oldMinQuantity": 30}


def test_audit_visibility_and_search(client):
    _create(client, id="P-1", name="Navy")
    _create(client, id="P-2", name="Sage")
    client.post("/api/items/P-1/check-out", json={"quantity": 2, "userName": "Dana"})
    client.post("/api/items/P-2/check-in", json={"quantity": 2, "userName": "Lee"})

    user_view = client.get("/api/audit", params={"userName": "Dana"}).json()
    admin_view = client.get("/api/audit", params={"userName": ADMIN, "limit": 3}).json()

    assert [entry["action"] for entry in user_view] == ["check_in", "check_out"]
    assert len(admin_view) == 3
    assert [entry["itemId"] for entry in client.get("/api/audit", params={"q": "navy", "userName": ADMIN}).json()] == [
        "P-1", "P-1",
    ]
    assert len(client.get("/api/audit", params={"itemId": "P-2", "userName": ADMIN}).json()) == 2
    assert len(client.get("/api/items/P-2/audit", params={"userName": "Dana"}).json()) == 1


def test_dashboard(client):
    _create(client, id="P-1", quantity=40, price=10)
    _create(client, id="P-2", quantity=5)
    client.post("/api/items/P-1/check-out", json={"quantity": 6, "userName": "Dana"})

    body = client.get("/api/dashboard").json()

    assert body["gallonsOutThisWeek"] == 6
    assert body["busiestItem"]["itemId"] == "P-1"
    assert body["totalItems"] == 2
    assert body["totalGallons"] == 39
    assert body["lowStockCount"] == 1
    assert body["totalValue"] == 340.0
    assert client.get("/api/dashboard", params={"period": "month"}).json()["period"]["label"]
    assert client.get("/api/dashboard", params={"period": "year"}).status_code == 422


def test_export_csv(client):
    _create(client, id="P-1", name="Navy", price=12.5, location="Bin 1")

    assert client.get("/api/export/csv", params={"userName": "Dana"}).status_code == 403
    response = client.get("/api/export/csv", params={"userName": ADMIN})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == [
        "Paint ID", "Color Name", "Quantity (gal)", "Type", "Location",
        "Description", "Price", "Last Scanned", "Last Scanned By",
    ]
    assert rows[1][:7] == ["P-1", "Navy", "20", "", "Bin 1", "", "12.50"]
    assert rows[1][8] == "Admin"


def test_bearer_token_sets_the_actor(client):
    token = client.post("/api/auth/token", json={"userName": ADMIN}).json()
    assert token["role"] == "admin"
    headers = {"Authorization": f"Bearer {token['access_token']}"}

    response = client.post("/api/items", json={"name": "Navy"}, headers=headers)

    assert response.status_code == 201
    assert client.post("/api/items", json={"name": "Navy"}, headers={"Authorization": "Bearer junk"}).status_code == 401


def test_storage_outage_is_503(client, monkeypatch):
    def unreachable(db):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(crud, "get_items", unreachable)

    response = client.get("/api/items")

    assert response.status_code == 503
    assert response.json() == {"success": False, "error": "Service unavailable"}
