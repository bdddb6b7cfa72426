# Overview: Pytest coverage for the stock and shift HTTP routes.

"""
API route tests.

Exercise the Flask blueprints end to end with the test client: tenant
headers, status codes and the stable error codes callers branch on.
"""

from conftest import COMPANY_A, COMPANY_B, tenant_headers


def _post_movement(client, movement_type, quantity, headers=None, **extra):
    payload = {
        "product_id": "P-001",
        "warehouse_id": "WH-01",
        "movement_type": movement_type,
        "quantity": quantity,
    }
    payload.update(extra)
    return client.post("/api/stock/movements", json=payload, headers=headers or tenant_headers())


class TestTenantContext:

    def test_missing_headers_rejected(self, client, db_session):
        response = client.get("/api/stock/")
        assert response.status_code == 401
        assert response.json["code"] == "UNAUTHENTICATED"

    def test_blank_company_rejected(self, client, db_session):
        response = client.get("/api/shifts/", headers=tenant_headers(company_id="  "))
        assert response.status_code == 401


class TestStockRoutes:

    def test_apply_and_read_quantity(self, client, db_session):
        response = _post_movement(client, "IN", 100, reference_type="purchase_order", reference_id="PO-1")
        assert response.status_code == 201
        assert response.json["stock"]["quantity"] == 100

        response = client.get(
            "/api/stock/quantity?product_id=P-001&warehouse_id=WH-01",
            headers=tenant_headers(),
        )
        assert response.status_code == 200
        assert response.json["quantity"] == 100

    def test_insufficient_stock_is_409(self, client, db_session):
        _post_movement(client, "IN", 100)
        response = _post_movement(client, "OUT", 150)

        assert response.status_code == 409
        assert response.json["code"] == "INSUFFICIENT_STOCK"
        assert response.json["available"] == 100
        assert response.json["requested"] == 150

    def test_validation_error_is_400(self, client, db_session):
        response = _post_movement(client, "IN", 0)
        assert response.status_code == 400
        assert response.json["code"] == "VALIDATION_ERROR"
        assert response.json["field"] == "quantity"

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/stock/movements", json={"product_id": "P-001"}, headers=tenant_headers())
        assert response.status_code == 400
        assert "movement_type" in response.json["error"]

    def test_non_object_body(self, client, db_session):
        response = client.post("/api/stock/movements", json=[1, 2], headers=tenant_headers())
        assert response.status_code == 400

    def test_movement_actor_comes_from_header(self, client, db_session):
        _post_movement(client, "IN", 5, headers=tenant_headers(user_id="clerk-7"))

        response = client.get("/api/stock/movements?product_id=P-001", headers=tenant_headers())
        assert response.status_code == 200
        assert response.json["movements"][0]["created_by"] == "clerk-7"

    def test_list_stock_is_tenant_scoped(self, client, db_session):
        _post_movement(client, "IN", 5)
        _post_movement(client, "IN", 9, headers=tenant_headers(company_id=COMPANY_B))

        response = client.get("/api/stock/", headers=tenant_headers())
        assert [s["quantity"] for s in response.json["stock"]] == [5]

    def test_bad_date_filter(self, client, db_session):
        response = client.get("/api/stock/movements?date_from=yesterday", headers=tenant_headers())
        assert response.status_code == 400
        assert response.json["field"] == "date_from"

    def test_transfer(self, client, db_session):
        _post_movement(client, "IN", 10)
        response = client.post("/api/stock/transfers", json={
            "product_id": "P-001",
            "from_warehouse_id": "WH-01",
            "to_warehouse_id": "WH-02",
            "quantity": 4,
        }, headers=tenant_headers())

        assert response.status_code == 201
        assert response.json["source"]["quantity"] == 6
        assert response.json["destination"]["quantity"] == 4

    def test_stock_count(self, client, db_session):
        _post_movement(client, "IN", 10)
        response = client.post("/api/stock/counts", json={
            "product_id": "P-001",
            "warehouse_id": "WH-01",
            "counted_quantity": 8,
            "notes": "Monthly opname",
        }, headers=tenant_headers())

        assert response.status_code == 200
        assert response.json["quantity"] == 8
        assert response.json["movement"]["quantity"] == -2


class TestShiftRoutes:

    def _open(self, client, headers=None, opening_cash=500000):
        return client.post("/api/shifts/", json={
            "register_id": "REG-01",
            "opening_cash": opening_cash,
        }, headers=headers or tenant_headers())

    def test_full_shift_flow(self, client, db_session):
        response = self._open(client)
        assert response.status_code == 201
        shift = response.json["shift"]
        assert shift["cashier_id"] == "cashier-1"

        for _ in range(3):
            response = client.post(
                f"/api/shifts/{shift['id']}/transactions",
                json={"payment_method": "cash", "total": 100000},
                headers=tenant_headers(),
            )
            assert response.status_code == 201

        response = client.get(f"/api/shifts/{shift['id']}/summary", headers=tenant_headers())
        assert response.status_code == 200
        assert response.json["summary"]["expected_cash"] == 800000

        response = client.post(
            f"/api/shifts/{shift['id']}/close",
            json={"actual_cash": 800000},
            headers=tenant_headers(),
        )
        assert response.status_code == 200
        assert response.json["shift"]["status"] == "CLOSED"
        assert response.json["shift"]["variance"] == 0

        response = client.post(
            f"/api/shifts/{shift['id']}/close",
            json={"actual_cash": 800000},
            headers=tenant_headers(),
        )
        assert response.status_code == 409
        assert response.json["code"] == "INVALID_STATE"

    def test_duplicate_open_is_conflict(self, client, db_session):
        self._open(client)
        response = self._open(client)
        assert response.status_code == 409
        assert response.json["code"] == "CONFLICT"

    def test_current_shift(self, client, db_session):
        response = client.get("/api/shifts/current", headers=tenant_headers())
        assert response.json["shift"] is None

        opened = self._open(client).json["shift"]
        response = client.get("/api/shifts/current", headers=tenant_headers())
        assert response.json["shift"]["id"] == opened["id"]

    def test_unexplained_variance(self, client, db_session):
        shift = self._open(client).json["shift"]
        response = client.post(
            f"/api/shifts/{shift['id']}/close",
            json={"actual_cash": 490000},
            headers=tenant_headers(),
        )
        assert response.status_code == 400
        assert response.json["field"] == "notes"

    def test_zero_actual_cash_is_accepted(self, client, db_session):
        shift = self._open(client, opening_cash=0).json["shift"]
        response = client.post(
            f"/api/shifts/{shift['id']}/close",
            json={"actual_cash": 0},
            headers=tenant_headers(),
        )
        assert response.status_code == 200

    def test_other_company_sees_404(self, client, db_session):
        shift = self._open(client).json["shift"]
        other = tenant_headers(company_id=COMPANY_B)

        assert client.get(f"/api/shifts/{shift['id']}", headers=other).status_code == 404
        response = client.post(f"/api/shifts/{shift['id']}/close", json={"actual_cash": 1}, headers=other)
        assert response.status_code == 404
        assert response.json["code"] == "NOT_FOUND"

    def test_cancel_transaction(self, client, db_session):
        shift = self._open(client).json["shift"]
        tx = client.post(
            f"/api/shifts/{shift['id']}/transactions",
            json={"payment_method": "cash", "total": 25000},
            headers=tenant_headers(),
        ).json["transaction"]

        response = client.post(f"/api/shifts/transactions/{tx['id']}/cancel", headers=tenant_headers())
        assert response.status_code == 200
        assert response.json["transaction"]["payment_status"] == "cancelled"

        summary = client.get(f"/api/shifts/{shift['id']}/summary", headers=tenant_headers()).json["summary"]
        assert summary["expected_cash"] == 500000

    def test_unknown_transaction_action(self, client, db_session):
        response = client.post("/api/shifts/transactions/1/void", headers=tenant_headers())
        assert response.status_code == 400

    def test_list_shifts(self, client, db_session):
        self._open(client)
        response = client.get("/api/shifts/?status=OPEN", headers=tenant_headers(COMPANY_A))
        assert response.status_code == 200
        assert len(response.json["shifts"]) == 1


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json["database"]["status"] == "healthy"
