"""API endpoint tests."""

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from florist_ledger.models.stock import StockHistoryEntry, StockRow

ORDER_DATE = "2026-01-25T11:00:00+09:00"


def order_payload(**overrides):
    payload = {
        "branch_name": "Gangnam",
        "orderer_name": "Choi",
        "order_date": ORDER_DATE,
        "payment_status": "paid",
        "lines": [{"item_id": "P1", "name": "Rose Bouquet", "quantity": 2, "price": 5000}],
    }
    payload.update(overrides)
    return payload


class TestHealthCheck:
    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestIdentity:
    def test_write_without_operator_is_rejected(self, client: TestClient, make_stock):
        make_stock("P1", "Gangnam", 10)
        response = client.post("/api/v1/orders", json=order_payload())
        assert response.status_code == 401

    def test_email_header_alone_is_enough(self, client: TestClient, make_stock, db_session: Session):
        make_stock("P1", "Gangnam", 10)
        response = client.post(
            "/api/v1/orders", json=order_payload(), headers={"X-Operator-Email": "florist@lilymag.test"}
        )
        assert response.status_code == 201
        entry = db_session.scalars(select(StockHistoryEntry)).one()
        assert entry.operator == "florist@lilymag.test"


class TestOrdersApi:
    def test_place_order(self, client: TestClient, make_stock, operator_headers):
        make_stock("P1", "Gangnam", 10)
        response = client.post("/api/v1/orders", json=order_payload(), headers=operator_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["succeeded"] is True
        assert data["outcomes"][0]["status"] == "applied"
        assert data["outcomes"][0]["to_stock"] == 8

        order = client.get(f"/api/v1/orders/{data['order_id']}").json()
        assert order["total"] == 10000

    def test_insufficient_stock_is_conflict_with_outcomes(self, client: TestClient, make_stock, operator_headers):
        make_stock("P1", "Gangnam", 1, name="Rose Bouquet")
        response = client.post("/api/v1/orders", json=order_payload(), headers=operator_headers)

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error"] == "order_placement_failed"
        assert detail["cause"]["item_name"] == "Rose Bouquet"
        assert detail["cause"]["current_stock"] == 1
        assert detail["outcomes"][0]["status"] == "failed"

    def test_invalid_payload_is_422(self, client: TestClient, operator_headers):
        response = client.post("/api/v1/orders", json=order_payload(lines=[]), headers=operator_headers)
        assert response.status_code == 422

    def test_order_audit(self, client: TestClient, make_stock, operator_headers):
        make_stock("P1", "Gangnam", 10)
        client.post("/api/v1/orders", json=order_payload(), headers=operator_headers)

        response = client.get("/api/v1/orders/audit", params={"date_from": "2026-01-25", "date_to": "2026-01-25"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["status"] == "ok"


class TestStockApi:
    def test_register_and_list_items(self, client: TestClient, operator_headers):
        response = client.post(
            "/api/v1/stock/items",
            json={"item_id": "P9", "branch_name": "Gangnam", "name": "Sunflower", "unit_price": 12000},
            headers=operator_headers,
        )
        assert response.status_code == 201
        assert response.json()["quantity"] == 0

        listing = client.get("/api/v1/stock/items", params={"branch": "Gangnam"}).json()
        assert listing["total"] == 1
        assert listing["items"][0]["name"] == "Sunflower"

    def test_adjust_stock(self, client: TestClient, make_stock, operator_headers):
        make_stock("M1", "Gangnam", 7)
        response = client.post(
            "/api/v1/stock/adjust",
            json={"item_id": "M1", "branch_name": "Gangnam", "new_quantity": 7},
            headers=operator_headers,
        )
        assert response.status_code == 200
        assert response.json()["delta"] == 0

    def test_adjust_unknown_item_is_404(self, client: TestClient, operator_headers):
        response = client.post(
            "/api/v1/stock/adjust",
            json={"item_id": "NOPE", "branch_name": "Gangnam", "new_quantity": 3},
            headers=operator_headers,
        )
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "item_not_found"

    def test_movements_report_per_item(self, client: TestClient, make_stock, operator_headers, db_session: Session):
        make_stock("R1", "Gangnam", 1, item_type="material")
        response = client.post(
            "/api/v1/stock/movements",
            json={
                "type": "out",
                "branch_name": "Gangnam",
                "items": [{"item_id": "R1", "quantity": 1}, {"item_id": "R1", "quantity": 1}],
            },
            headers=operator_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] == 1
        assert data["failed"] == 1
        assert data["items"][1]["error"]["error"] == "insufficient_stock"
        db_session.expire_all()
        assert db_session.scalars(select(StockRow)).one().quantity == 0

    def test_history(self, client: TestClient, make_stock, operator_headers):
        make_stock("P1", "Gangnam", 10)
        client.post("/api/v1/orders", json=order_payload(), headers=operator_headers)

        response = client.get("/api/v1/stock/history", params={"type": "out", "date_from": "2026-01-25"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["has_more"] is False
        assert data["items"][0]["quantity"] == 2

    def test_history_bad_date_is_422(self, client: TestClient):
        response = client.get("/api/v1/stock/history", params={"date_from": "yesterday"})
        assert response.status_code == 422


class TestTransfersAndStatsApi:
    def test_transfer_flow_and_reconcile(self, client: TestClient, make_stock, operator_headers):
        make_stock("P1", "Gangnam", 10)
        order_id = client.post("/api/v1/orders", json=order_payload(), headers=operator_headers).json()["order_id"]

        response = client.post(
            f"/api/v1/transfers/{order_id}",
            json={"process_branch_name": "Hongdae", "order_branch_percent": 70, "process_branch_percent": 30},
            headers=operator_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

        assert client.post(f"/api/v1/transfers/{order_id}/complete", headers=operator_headers).status_code == 409
        assert client.post(f"/api/v1/transfers/{order_id}/accept", headers=operator_headers).json()["status"] == "accepted"

        response = client.post("/api/v1/stats/daily/2026-01-25/reconcile", headers=operator_headers)
        assert response.status_code == 200
        stat = response.json()
        assert stat["total_revenue"] == 10000
        assert stat["branches"]["Gangnam"]["revenue"] == 7000
        assert stat["branches"]["Hongdae"]["revenue"] == 3000
        assert stat["total_settled_amount"] == 10000

        fetched = client.get("/api/v1/stats/daily/2026-01-25").json()
        assert fetched["total_order_count"] == 1

    def test_order_date_without_offset_is_local_time(self, client: TestClient, make_stock, operator_headers):
        make_stock("P1", "Gangnam", 10)
        response = client.post(
            "/api/v1/orders", json=order_payload(order_date="2026-01-25T20:00:00"), headers=operator_headers
        )
        assert response.status_code == 201

        stat = client.post("/api/v1/stats/daily/2026-01-25/reconcile", headers=operator_headers).json()
        assert stat["total_revenue"] == 10000
        assert stat["total_order_count"] == 1

        next_day = client.post("/api/v1/stats/daily/2026-01-26/reconcile", headers=operator_headers).json()
        assert next_day["total_order_count"] == 0

    def test_unknown_stats_date_is_404(self, client: TestClient):
        assert client.get("/api/v1/stats/daily/2020-01-01").status_code == 404

    def test_transfer_unknown_order_is_404(self, client: TestClient, operator_headers):
        response = client.post(
            "/api/v1/transfers/999",
            json={"process_branch_name": "Hongdae", "order_branch_percent": 50, "process_branch_percent": 50},
            headers=operator_headers,
        )
        assert response.status_code == 404


class TestBranchesApi:
    def test_list_branches(self, client: TestClient, branches):
        data = client.get("/api/v1/branches").json()
        assert [b["name"] for b in data["items"]] == ["Gangnam", "Hongdae"]
