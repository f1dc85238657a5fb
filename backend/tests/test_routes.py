# Overview: Pytest coverage for the HTTP API (Flask test client).

"""
API route tests

Every check goes through the HTTP surface: open a scanning session, feed
it codes through the live input channel, edit the draft, commit, then edit
or delete the committed lines and watch the inventory counters move.
"""

import pytest


def open_session(client, store_id, **body):
    body.setdefault("store_id", store_id)
    response = client.post("/api/scan-sessions", json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["session"]


def scan(client, session_id, code):
    response = client.post(f"/api/scan-sessions/{session_id}/codes", json={"code": code})
    assert response.status_code == 200, response.get_json()
    return response.get_json()["session"]


def available_qty(client, product_id):
    return client.get(f"/api/products/{product_id}").get_json()["product"]["available_qty"]


class TestScanSessionRoutes:
    """Session lifecycle, input channels and draft editing."""

    def test_scan_and_commit_sale(self, client, store, phone_x, phone_y):
        session = open_session(client, store.id)
        sid = session["id"]
        assert session["mode"] == "manual"
        assert session["kind"] == "sale"

        for code in ["A1", "A2", "B1"]:
            state = scan(client, sid, code)

        lines = state["draft"]["lines"]
        assert [line["codes"] for line in lines] == [["A1", "A2", ""], ["B1", ""]]
        assert [line["quantity"] for line in lines] == [2, 1]
        assert state["available_codes"][str(phone_x.id)] == ["A1", "A2", "A3", "A4", "A5"]

        response = client.post(f"/api/scan-sessions/{sid}/commit", json={"payment_method": "Cash"})
        assert response.status_code == 201
        body = response.get_json()
        assert body["session"]["draft"]["status"] == "COMMITTED"
        assert body["result"]["sale_group"]["total_amount_cents"] == 2 * 45_000_00 + 38_000_00

        assert available_qty(client, phone_x.id) == 8
        assert available_qty(client, phone_y.id) == 9

    def test_rejected_code_is_reported_as_notice(self, client, store, phone_x):
        sid = open_session(client, store.id)["id"]
        state = scan(client, sid, "NOPE-1")
        notice = state["notices"][-1]
        assert notice["level"] == "error"
        assert notice["reason"] == "NOT_FOUND"
        assert state["draft"]["lines"][0]["codes"] == [""]

    def test_input_for_another_channel_is_refused(self, client, store, phone_x):
        sid = open_session(client, store.id, mode="external")["id"]

        response = client.post(f"/api/scan-sessions/{sid}/codes", json={"code": "A1"})
        assert response.status_code == 409

        keys = [{"key": "A", "at_ms": 0}, {"key": "1", "at_ms": 8}, {"key": "Enter", "at_ms": 16}]
        response = client.post(f"/api/scan-sessions/{sid}/keys", json={"keys": keys})
        assert response.status_code == 200
        assert response.get_json()["emitted"] == 1

        response = client.post(f"/api/scan-sessions/{sid}/keys", json={"keys": []})
        assert response.status_code == 400

    def test_camera_channel_and_fallback(self, client, store, phone_x):
        sid = open_session(client, store.id, mode="camera")["id"]

        response = client.post(f"/api/scan-sessions/{sid}/camera", json={"codes": ["A1"]})
        assert response.status_code == 200
        assert response.get_json()["session"]["tones"] == 1

        response = client.post(
            f"/api/scan-sessions/{sid}/camera/error",
            json={"kind": "permission_denied", "message": "Camera permission denied."},
        )
        state = response.get_json()["session"]
        assert state["mode"] == "manual"
        assert state["camera_error"] == "Camera permission denied."

        response = client.post(f"/api/scan-sessions/{sid}/camera", json={"codes": ["A2"]})
        assert response.status_code == 409
        assert scan(client, sid, "A2")["draft"]["lines"][0]["quantity"] == 2

    def test_switch_mode_validation(self, client, store):
        sid = open_session(client, store.id)["id"]
        response = client.post(f"/api/scan-sessions/{sid}/mode", json={"mode": "telepathy"})
        assert response.status_code == 400

        response = client.post(f"/api/scan-sessions/{sid}/mode", json={"mode": "external"})
        assert response.get_json()["session"]["mode"] == "external"

    def test_draft_line_editing(self, client, store, phone_x, phone_y):
        sid = open_session(client, store.id)["id"]
        scan(client, sid, "A1")
        base = f"/api/scan-sessions/{sid}"

        assert client.post(f"{base}/lines").status_code == 201

        response = client.patch(f"{base}/lines/1", json={"product_id": phone_y.id, "quantity": 3})
        line = response.get_json()["session"]["draft"]["lines"][1]
        assert line["product_name"] == "Phone Y"
        assert line["quantity"] == 3
        assert line["quantity_manually_set"]

        response = client.patch(f"{base}/lines/1", json={"clear_quantity_override": True, "unit_price_cents": 100})
        line = response.get_json()["session"]["draft"]["lines"][1]
        assert line["quantity"] == 1
        assert line["unit_price_cents"] == 100

        response = client.put(f"{base}/lines/0/slots/1/tag", json={"tag": "512GB"})
        assert response.get_json()["session"]["draft"]["lines"][0]["tags"] == ["128GB", "512GB"]

        assert client.post(f"{base}/lines/0/slots").status_code == 201
        response = client.delete(f"{base}/lines/0/slots/0")
        assert response.get_json()["session"]["draft"]["lines"][0]["codes"] == ["", ""]

        response = client.post(f"{base}/cursor", json={"line_index": 1, "slot_index": 0})
        assert response.get_json()["session"]["draft"]["cursor"] == {"line_index": 1, "slot_index": 0}

        response = client.delete(f"{base}/lines/1")
        assert len(response.get_json()["session"]["draft"]["lines"]) == 1

        assert client.delete(f"{base}/lines/7").status_code == 400
        assert client.patch(f"{base}/lines/0", json={"quantity": 0}).status_code == 400
        assert client.patch(f"{base}/lines/0", json={"unit_price_cents": "1.5"}).status_code == 400

    def test_insufficient_stock_conflict(self, client, store, make_product):
        scarce = make_product("Scarce", codes=["S1", "S2"], purchase_qty=1)
        sid = open_session(client, store.id)["id"]
        scan(client, sid, "S1")
        scan(client, sid, "S2")

        response = client.post(f"/api/scan-sessions/{sid}/commit", json={"payment_method": "Cash"})
        assert response.status_code == 409
        assert response.get_json()["error"] == "Insufficient stock for Scarce: only 1 available"
        assert available_qty(client, scarce.id) == 1

        state = client.get(f"/api/scan-sessions/{sid}").get_json()["session"]
        assert state["draft"]["status"] == "DRAFT"

    def test_commit_validation(self, client, store, phone_x):
        sid = open_session(client, store.id)["id"]
        scan(client, sid, "A1")

        assert client.post(f"/api/scan-sessions/{sid}/commit", json={}).status_code == 400
        assert client.post(f"/api/scan-sessions/{sid}/commit", json={"payment_method": 5}).status_code == 400
        assert client.post(f"/api/scan-sessions/{sid}/commit", json={"entries": "x"}).status_code == 400

    def test_open_validation(self, client, store, phone_x):
        assert client.post("/api/scan-sessions", json={}).status_code == 400
        assert client.post("/api/scan-sessions", json={"store_id": store.id, "kind": "layaway"}).status_code == 400
        assert client.post("/api/scan-sessions", json={"store_id": store.id, "kind": "catalog"}).status_code == 400
        response = client.post("/api/scan-sessions", json={"store_id": store.id, "kind": "catalog", "product_id": 9999})
        assert response.status_code == 400

    def test_closed_session_is_gone(self, client, store):
        sid = open_session(client, store.id)["id"]
        response = client.delete(f"/api/scan-sessions/{sid}")
        assert response.get_json()["session"]["closed"] is True

        assert client.get(f"/api/scan-sessions/{sid}").status_code == 404
        assert client.post(f"/api/scan-sessions/{sid}/codes", json={"code": "A1"}).status_code == 404
        assert client.delete(f"/api/scan-sessions/{sid}").status_code == 404

    def test_reset_starts_a_new_draft(self, client, store, phone_x):
        sid = open_session(client, store.id)["id"]
        scan(client, sid, "A1")
        client.post(f"/api/scan-sessions/{sid}/commit", json={"payment_method": "Cash"})

        state = client.post(f"/api/scan-sessions/{sid}/reset").get_json()["session"]
        assert state["draft"]["status"] == "DRAFT"
        state = scan(client, sid, "A1")
        assert state["notices"][-1]["reason"] == "ALREADY_SOLD"

    def test_debt_session(self, client, store, phone_x):
        sid = open_session(client, store.id, kind="debt")["id"]
        scan(client, sid, "A3")

        response = client.post(f"/api/scan-sessions/{sid}/commit", json={
            "entries": [{"customer_name": "Dana", "owed_cents": 45_000_00, "deposited_cents": 5_000_00}],
        })
        assert response.status_code == 201

        body = client.get(f"/api/debts?store_id={store.id}&outstanding=1").get_json()
        assert body["total_remaining_cents"] == 40_000_00
        debt_id = body["debts"][0]["id"]
        assert available_qty(client, phone_x.id) == 10

        response = client.patch(f"/api/debts/{debt_id}", json={"deposited_cents": 15_000_00, "codes": ["A3", "A4"]})
        assert response.status_code == 200
        debt = response.get_json()["debt"]
        assert debt["remaining_balance_cents"] == 30_000_00
        assert debt["codes"] == ["A3", "A4"]
        assert debt["tags"] == ["256GB", ""]
        assert client.patch(f"/api/debts/{debt_id}", json={}).status_code == 400
        assert client.patch(f"/api/debts/{debt_id}", json={"codes": ["B1"]}).status_code == 400
        assert client.patch("/api/debts/9999", json={"owed_cents": 1}).status_code == 404

        assert client.delete(f"/api/debts/{debt_id}").status_code == 200
        assert client.delete(f"/api/debts/{debt_id}").status_code == 404

    def test_catalog_session(self, client, store, phone_x):
        sid = open_session(client, store.id, kind="catalog", product_id=phone_x.id)["id"]
        scan(client, sid, "A9")

        response = client.post(f"/api/scan-sessions/{sid}/commit", json={})
        assert response.status_code == 201
        assert response.get_json()["result"]["added"] == ["A9"]

        product = client.get(f"/api/products/{phone_x.id}").get_json()["product"]
        assert product["codes"][-1] == "A9"


class TestSalesRoutes:
    """Edits and deletes of committed lines compensate inventory."""

    def _sell(self, client, store_id, *codes):
        sid = open_session(client, store_id)["id"]
        for code in codes:
            scan(client, sid, code)
        body = client.post(f"/api/scan-sessions/{sid}/commit", json={"payment_method": "Cash"}).get_json()
        return sid, body["result"]

    def test_edit_and_delete_line(self, client, store, phone_x):
        _sid, result = self._sell(client, store.id, "A1", "A2")
        line_id = result["lines"][0]["id"]
        assert available_qty(client, phone_x.id) == 8

        response = client.patch(f"/api/sales/lines/{line_id}", json={"quantity": 5})
        assert response.status_code == 200
        assert response.get_json()["quantity_delta"] == 3
        assert available_qty(client, phone_x.id) == 5

        response = client.patch(f"/api/sales/lines/{line_id}", json={"codes": ["A1"]})
        assert response.get_json()["quantity_delta"] == -4
        assert available_qty(client, phone_x.id) == 9

        response = client.delete(f"/api/sales/lines/{line_id}")
        assert response.status_code == 200
        assert available_qty(client, phone_x.id) == 10

        group_id = result["sale_group"]["id"]
        sale = client.get(f"/api/sales/{group_id}").get_json()
        assert sale["lines"] == []
        assert sale["sale"]["total_amount_cents"] == 0
        assert client.get("/api/sales/99999").status_code == 404

    def test_deleted_line_frees_its_codes(self, client, store, phone_x):
        _sid, result = self._sell(client, store.id, "A1")
        watcher = open_session(client, store.id)["id"]
        assert scan(client, watcher, "A1")["notices"][-1]["reason"] == "ALREADY_SOLD"

        client.delete(f"/api/sales/lines/{result['lines'][0]['id']}")

        state = scan(client, watcher, "A1")
        assert state["notices"][-1]["level"] == "success"
        assert state["draft"]["lines"][0]["codes"] == ["A1", ""]

    def test_edit_validation(self, client, store, phone_x):
        _sid, result = self._sell(client, store.id, "A1")
        line_id = result["lines"][0]["id"]

        assert client.patch(f"/api/sales/lines/{line_id}", json={}).status_code == 400
        assert client.patch(f"/api/sales/lines/{line_id}", json={"tags": ["x"]}).status_code == 400
        assert client.patch(f"/api/sales/lines/{line_id}", json={"quantity": 50}).status_code == 409
        assert client.patch("/api/sales/lines/9999", json={"quantity": 2}).status_code == 404
        assert client.delete("/api/sales/lines/9999").status_code == 404

    def test_list_sales(self, client, store, phone_x):
        self._sell(client, store.id, "A1")
        self._sell(client, store.id, "A2")
        lines = client.get(f"/api/sales?store_id={store.id}&limit=1").get_json()["lines"]
        assert len(lines) == 1
        assert client.get("/api/sales").status_code == 400


class TestCatalogRoutes:
    """Products, unit codes, device lookup and inventory."""

    def test_create_product(self, client, store):
        response = client.post("/api/products", json={
            "store_id": store.id,
            "name": "Tablet Z",
            "selling_price_cents": 25_000_00,
            "codes": ["T1", "T2"],
            "tags": ["64GB", "256GB"],
        })
        assert response.status_code == 201
        product = response.get_json()["product"]
        assert product["available_qty"] == 2
        assert product["tags"] == ["64GB", "256GB"]

        listed = client.get(f"/api/products?store_id={store.id}").get_json()["products"]
        assert [p["name"] for p in listed] == ["Tablet Z"]

    @pytest.mark.parametrize("body", [
        {"name": "No store"},
        {"store_id": 1, "name": "   "},
        {"store_id": 1, "name": "Bad price", "selling_price_cents": 1.5},
        {"store_id": 1, "name": "Bad codes", "codes": "T1"},
    ])
    def test_create_product_validation(self, client, store, body):
        assert client.post("/api/products", json=body).status_code == 400

    def test_code_conflicts(self, client, store, phone_x):
        response = client.post("/api/products", json={"store_id": store.id, "name": "Clash", "codes": ["A1"]})
        assert response.status_code == 400
        assert response.get_json()["details"]["conflicts"] == {"A1": "Phone X"}

        response = client.post("/api/products/validate-codes", json={"store_id": store.id, "codes": ["A2", "Z1"]})
        assert response.get_json() == {"valid": False, "conflicts": {"A2": "Phone X"}}

        response = client.post("/api/products/validate-codes", json={
            "store_id": store.id, "codes": ["A2"], "product_id": phone_x.id,
        })
        assert response.get_json()["valid"] is True

        response = client.post("/api/products/validate-codes", json={"store_id": store.id, "codes": ["Q", "q"]})
        assert response.status_code == 400

    def test_add_remove_code_and_restock(self, client, store, phone_x):
        response = client.post(f"/api/products/{phone_x.id}/codes", json={"code": "A6", "tag": "1TB"})
        assert response.status_code == 201
        assert response.get_json()["product"]["codes"][-1] == "A6"

        response = client.delete(f"/api/products/{phone_x.id}/codes/A6")
        assert "A6" not in response.get_json()["product"]["codes"]

        response = client.post(f"/api/products/{phone_x.id}/restock", json={"quantity": 4})
        assert response.get_json()["inventory"]["available_qty"] == 14
        assert client.post(f"/api/products/{phone_x.id}/restock", json={"quantity": 0}).status_code == 400
        assert client.post("/api/products/9999/restock", json={"quantity": 1}).status_code == 404

    def test_device_lookup(self, client, store, phone_x):
        response = client.get(f"/api/devices/A3?store_id={store.id}")
        assert response.status_code == 200
        device = response.get_json()["device"]
        assert device["product"]["name"] == "Phone X"
        assert device["tag"] == "256GB"
        assert device["sold"] is False

        assert client.get(f"/api/devices/NOPE?store_id={store.id}").status_code == 404
        assert client.get("/api/devices/A3").status_code == 400

        response = client.get(f"/api/devices/%20?store_id={store.id}")
        assert response.status_code == 400
        assert response.get_json()["error"] == "Code cannot be empty"

    def test_inventory_and_low_stock(self, client, store, phone_x, make_product):
        make_product("Last One", codes=["L1"])
        inventory = client.get(f"/api/inventory?store_id={store.id}").get_json()["inventory"]
        assert len(inventory) == 2

        body = client.get(f"/api/inventory/low-stock?store_id={store.id}").get_json()
        assert body["threshold"] == 6
        assert [r["product_name"] for r in body["inventory"]] == ["Last One"]


class TestSystemRoutes:
    def test_stores(self, client, db_session):
        response = client.post("/api/stores", json={"name": "Kiosk", "code": "KIOSK"})
        assert response.status_code == 201
        assert client.post("/api/stores", json={"name": "Again", "code": "KIOSK"}).status_code == 400
        stores = client.get("/api/stores").get_json()["stores"]
        assert [s["code"] for s in stores] == ["KIOSK"]

    def test_health(self, client, store):
        open_session(client, store.id)
        body = client.get("/health").get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["scan_sessions"]["open"] == 1
