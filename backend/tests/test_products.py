"""
Product catalog tests.

Verifies:
- Create validates the payload and records opening stock in the ledger
- SKU is unique across every tenant
- Stock edits become ledger movements; soft delete keeps the ledger
- Listing supports category filter, search and pagination
- Low-stock alert and reconciliation endpoints
"""

import pytest

from stockbook.models import Product, StockMovement
from stockbook.services.inventory_service import reconcile_stock

from conftest import make_category, make_product


def _payload(category_id, **overrides):
    payload = {
        "name": "Keyboard",
        "description": "Mechanical keyboard",
        "sku": "KB-001",
        "category_id": category_id,
        "price_cents": 4999,
        "cost_price_cents": 2500,
        "stock_quantity": 12,
        "low_stock_threshold": 3,
        "supplier": "Keys Inc.",
    }
    payload.update(overrides)
    return payload


# =============================================================================
# CREATE
# =============================================================================


class TestCreateProduct:

    def test_create_product(self, client, db_session, headers_a, user_a, category_a):
        resp = client.post("/api/products", json=_payload(category_a.id), headers=headers_a)
        assert resp.status_code == 201, resp.json
        product = resp.json["product"]
        assert product["sku"] == "KB-001"
        assert product["user_id"] == user_a.id
        assert product["category"]["name"] == "Electronics"
        assert product["stock_quantity"] == 12

        db_session.expire_all()
        movements = db_session.query(StockMovement).filter_by(product_id=product["id"]).all()
        assert [(m.type, m.quantity, m.reason) for m in movements] == [("IN", 12, "Initial stock")]

    def test_zero_opening_stock_writes_no_movement(self, client, db_session, headers_a, category_a):
        resp = client.post(
            "/api/products", json=_payload(category_a.id, stock_quantity=0), headers=headers_a,
        )
        assert resp.status_code == 201
        db_session.expire_all()
        assert db_session.query(StockMovement).count() == 0

    def test_defaults_applied(self, client, db_session, headers_a, category_a):
        payload = _payload(category_a.id)
        del payload["low_stock_threshold"]
        del payload["supplier"]
        resp = client.post("/api/products", json=payload, headers=headers_a)
        assert resp.status_code == 201
        assert resp.json["product"]["low_stock_threshold"] == 10
        assert resp.json["product"]["supplier"] == ""

    @pytest.mark.parametrize("missing", ["name", "sku", "category_id", "price_cents", "stock_quantity"])
    def test_missing_required_field(self, client, db_session, headers_a, category_a, missing):
        payload = _payload(category_a.id)
        del payload[missing]
        resp = client.post("/api/products", json=payload, headers=headers_a)
        assert resp.status_code == 400
        assert missing in resp.json["error"]

    @pytest.mark.parametrize("field,value,message", [
        ("price_cents", -1, "price_cents must be >= 0"),
        ("price_cents", 12.5, "price_cents must be an integer, not a decimal"),
        ("stock_quantity", -3, "stock_quantity must be >= 0"),
        ("price_cents", 1_000_000_000, "price_cents cannot exceed 999999999"),
        ("user_id", 5, "Field not allowed: user_id"),
        ("color", "red", "Unknown field: color"),
    ])
    def test_invalid_values(self, client, db_session, headers_a, category_a, field, value, message):
        resp = client.post("/api/products", json=_payload(category_a.id, **{field: value}), headers=headers_a)
        assert resp.status_code == 400
        assert resp.json["error"] == message

    def test_duplicate_sku_same_user(self, client, db_session, headers_a, product_a, category_a):
        resp = client.post("/api/products", json=_payload(category_a.id, sku="A-LAPTOP"), headers=headers_a)
        assert resp.status_code == 400
        assert resp.json["error"] == "Product with this SKU already exists"

    def test_duplicate_sku_other_user(self, client, db_session, headers_b, product_a, category_b):
        resp = client.post("/api/products", json=_payload(category_b.id, sku="A-LAPTOP"), headers=headers_b)
        assert resp.status_code == 400
        assert resp.json["error"] == "Product with this SKU already exists"

    def test_category_of_other_user_rejected(self, client, db_session, headers_a, category_b):
        resp = client.post("/api/products", json=_payload(category_b.id), headers=headers_a)
        assert resp.status_code == 400
        assert resp.json["error"] == "Category not found"


# =============================================================================
# UPDATE / DELETE
# =============================================================================


class TestUpdateProduct:

    def test_price_update(self, client, db_session, headers_a, product_a):
        resp = client.put(f"/api/products/{product_a['id']}", json={"price_cents": 1250}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["product"]["price_cents"] == 1250
        assert resp.json["product"]["stock_quantity"] == 20

    @pytest.mark.parametrize("new_stock,movement", [
        (25, ("IN", 5)),
        (12, ("OUT", 8)),
    ])
    def test_stock_edit_recorded_in_ledger(self, client, db_session, headers_a, product_a, new_stock, movement):
        resp = client.put(
            f"/api/products/{product_a['id']}", json={"stock_quantity": new_stock}, headers=headers_a,
        )
        assert resp.status_code == 200
        assert resp.json["product"]["stock_quantity"] == new_stock

        db_session.expire_all()
        last = (
            db_session.query(StockMovement)
            .filter_by(product_id=product_a["id"])
            .order_by(StockMovement.id.desc())
            .first()
        )
        assert (last.type, last.quantity) == movement
        assert last.reason == "Stock adjustment"

    def test_unchanged_stock_writes_no_movement(self, client, db_session, headers_a, product_a):
        client.put(f"/api/products/{product_a['id']}", json={"stock_quantity": 20}, headers=headers_a)
        db_session.expire_all()
        assert db_session.query(StockMovement).filter_by(product_id=product_a["id"]).count() == 1

    def test_sku_change_to_existing_rejected(self, client, db_session, headers_a, product_a, product_a2):
        resp = client.put(f"/api/products/{product_a['id']}", json={"sku": "A-MOUSE"}, headers=headers_a)
        assert resp.status_code == 400

    def test_update_missing_product(self, client, db_session, headers_a):
        resp = client.put("/api/products/99999", json={"price_cents": 100}, headers=headers_a)
        assert resp.status_code == 404

    def test_soft_delete(self, client, db_session, headers_a, product_a):
        resp = client.delete(f"/api/products/{product_a['id']}", headers=headers_a)
        assert resp.status_code == 200

        assert client.get(f"/api/products/{product_a['id']}", headers=headers_a).status_code == 404
        assert client.get("/api/products", headers=headers_a).json["pagination"]["total"] == 0

        db_session.expire_all()
        product = db_session.get(Product, product_a["id"])
        assert product.is_active is False
        assert product.stock_quantity == 20
        assert db_session.query(StockMovement).filter_by(product_id=product.id).count() == 1

    def test_movements_still_visible_after_delete(self, client, db_session, headers_a, product_a):
        client.delete(f"/api/products/{product_a['id']}", headers=headers_a)
        resp = client.get(f"/api/products/{product_a['id']}/movements", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["pagination"]["total"] == 1


# =============================================================================
# READ
# =============================================================================


class TestReadProducts:

    def test_get_product_includes_recent_movements(self, client, db_session, headers_a, product_a):
        for stock in (21, 22, 23):
            client.put(f"/api/products/{product_a['id']}", json={"stock_quantity": stock}, headers=headers_a)

        resp = client.get(f"/api/products/{product_a['id']}", headers=headers_a)
        assert resp.status_code == 200
        movements = resp.json["product"]["stock_movements"]
        assert len(movements) == 4
        assert movements[0]["reason"] == "Stock adjustment"
        assert movements[-1]["reason"] == "Initial stock"

    def test_list_search_and_category_filter(
        self, client, db_session, headers_a, user_a, category_a, product_a, product_a2
    ):
        books = make_category(db_session, user_a, "Books")
        make_product(user_a, books, sku="A-NOVEL", name="Novel", price_cents=1200, stock=3)

        resp = client.get("/api/products?search=mou", headers=headers_a)
        assert [p["sku"] for p in resp.json["products"]] == ["A-MOUSE"]

        resp = client.get("/api/products?search=a-lap", headers=headers_a)
        assert [p["sku"] for p in resp.json["products"]] == ["A-LAPTOP"]

        resp = client.get(f"/api/products?category={books.id}", headers=headers_a)
        assert [p["sku"] for p in resp.json["products"]] == ["A-NOVEL"]

    def test_pagination(self, client, db_session, headers_a, user_a, category_a):
        for i in range(5):
            make_product(user_a, category_a, sku=f"P-{i}", name=f"Item {i}", price_cents=100, stock=1)

        resp = client.get("/api/products?page=2&limit=2", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["pagination"] == {"total": 5, "page": 2, "limit": 2, "total_pages": 3}
        assert len(resp.json["products"]) == 2

    def test_invalid_pagination(self, client, db_session, headers_a):
        resp = client.get("/api/products?page=0", headers=headers_a)
        assert resp.status_code == 400

    def test_low_stock_alert(self, client, db_session, headers_a, user_a, category_a, product_a, product_a2):
        make_product(user_a, category_a, sku="A-CABLE", name="Cable", price_cents=100, stock=10, threshold=10)

        resp = client.get("/api/products/low-stock/alert", headers=headers_a)
        assert resp.status_code == 200
        assert [p["sku"] for p in resp.json["products"]] == ["A-MOUSE", "A-CABLE"]

    def test_reconcile_reports_drift(self, client, db_session, headers_a, user_a, product_a):
        resp = client.get("/api/products/stock/reconcile", headers=headers_a)
        assert resp.json == {"discrepancies": [], "count": 0}

        db_session.expire_all()
        product = db_session.get(Product, product_a["id"])
        product.stock_quantity = 17
        db_session.commit()

        resp = client.get("/api/products/stock/reconcile", headers=headers_a)
        assert resp.json["count"] == 1
        drift = resp.json["discrepancies"][0]
        assert drift["sku"] == "A-LAPTOP"
        assert drift["ledger_quantity"] == 20
        assert drift["difference"] == -3

        assert [d.product_id for d in reconcile_stock(user_id=user_a.id)] == [product_a["id"]]
