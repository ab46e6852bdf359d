"""
Invoice lifecycle tests.

Verifies:
- Totals are computed from line items, tax and order discount
- Creation decrements stock and writes one OUT movement per line
- Creation is all-or-nothing (missing product, insufficient stock)
- Invoice numbers are sequential per user and never reused
- Deleting a non-PAID invoice restores stock with IN movements
- PAID invoices cannot be deleted
"""

import pytest

from stockbook.models import Invoice, InvoiceItem, Product, StockMovement
from stockbook.services import invoice_service
from stockbook.services.invoice_service import InvoiceError, invoice_total_cents
from stockbook.services.inventory_service import reconcile_stock

from conftest import invoice_payload


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_quantity


def _movements(db_session, product_id):
    db_session.expire_all()
    return (
        db_session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


class TestInvoiceTotals:
    """Pure total arithmetic."""

    def test_documented_example(self):
        items = [
            {"quantity": 2, "unit_price_cents": 1000, "discount_cents": 0},
            {"quantity": 1, "unit_price_cents": 500, "discount_cents": 100},
        ]
        assert invoice_total_cents(items=items, tax_amount_cents=300, discount_cents=0) == 2700

    def test_order_discount_subtracted(self):
        items = [{"quantity": 3, "unit_price_cents": 1000, "discount_cents": 0}]
        assert invoice_total_cents(items=items, tax_amount_cents=0, discount_cents=500) == 2500


class TestCreateInvoice:

    def test_create_invoice_computes_total_and_decrements_stock(
        self, client, db_session, headers_a, customer_a, product_a, product_a2
    ):
        payload = invoice_payload(
            customer_a.id,
            (product_a["id"], 2, 1000),
            (product_a2["id"], 1, 500, 100),
            tax=300,
        )
        resp = client.post("/api/invoices", json=payload, headers=headers_a)
        assert resp.status_code == 201, resp.json

        invoice = resp.json["invoice"]
        assert invoice["total_amount_cents"] == 2700
        assert invoice["tax_amount_cents"] == 300
        assert invoice["status"] == "PENDING"
        assert invoice["invoice_no"] == "INV-0001"
        assert invoice["customer"]["name"] == "John Smith"
        assert [i["total_cents"] for i in invoice["items"]] == [2000, 400]

        assert _stock(db_session, product_a["id"]) == 18
        assert _stock(db_session, product_a2["id"]) == 4

    def test_create_invoice_writes_out_movement_per_line(
        self, client, db_session, headers_a, customer_a, product_a
    ):
        payload = invoice_payload(customer_a.id, (product_a["id"], 3, 1000))
        resp = client.post("/api/invoices", json=payload, headers=headers_a)
        assert resp.status_code == 201

        movements = _movements(db_session, product_a["id"])
        assert [(m.type, m.quantity, m.reason) for m in movements] == [
            ("IN", 20, "Initial stock"),
            ("OUT", 3, "Sale"),
        ]
        assert movements[-1].reference == "INV-0001"

    def test_invoice_numbers_are_sequential(
        self, client, db_session, headers_a, customer_a, product_a
    ):
        numbers = []
        for _ in range(3):
            resp = client.post(
                "/api/invoices",
                json=invoice_payload(customer_a.id, (product_a["id"], 1, 1000)),
                headers=headers_a,
            )
            numbers.append(resp.json["invoice"]["invoice_no"])
        assert numbers == ["INV-0001", "INV-0002", "INV-0003"]

    def test_invoice_numbers_not_reused_after_delete(
        self, client, db_session, headers_a, customer_a, product_a
    ):
        first = client.post(
            "/api/invoices",
            json=invoice_payload(customer_a.id, (product_a["id"], 1, 1000)),
            headers=headers_a,
        ).json["invoice"]
        client.delete(f"/api/invoices/{first['id']}", headers=headers_a)

        second = client.post(
            "/api/invoices",
            json=invoice_payload(customer_a.id, (product_a["id"], 1, 1000)),
            headers=headers_a,
        ).json["invoice"]
        assert second["invoice_no"] == "INV-0002"

    def test_numbering_is_per_user(
        self, client, db_session, headers_a, headers_b, customer_a, customer_b, product_a, product_b
    ):
        a = client.post(
            "/api/invoices",
            json=invoice_payload(customer_a.id, (product_a["id"], 1, 1000)),
            headers=headers_a,
        )
        b = client.post(
            "/api/invoices",
            json=invoice_payload(customer_b.id, (product_b["id"], 1, 2000)),
            headers=headers_b,
        )
        assert a.json["invoice"]["invoice_no"] == "INV-0001"
        assert b.json["invoice"]["invoice_no"] == "INV-0001"

    def test_insufficient_stock_rejects_whole_invoice(
        self, client, db_session, headers_a, customer_a, product_a, product_a2
    ):
        payload = invoice_payload(
            customer_a.id,
            (product_a["id"], 1, 1000),
            (product_a2["id"], 6, 500),
        )
        resp = client.post("/api/invoices", json=payload, headers=headers_a)

        assert resp.status_code == 400
        assert resp.json["error"] == "Insufficient stock for Mouse. Available: 5, Requested: 6"
        assert resp.json["details"]["available"] == 5

        assert _stock(db_session, product_a["id"]) == 20
        assert _stock(db_session, product_a2["id"]) == 5
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0
        assert db_session.query(StockMovement).filter_by(type="OUT").count() == 0

    def test_quantities_for_same_product_are_summed(
        self, client, db_session, headers_a, customer_a, product_a2
    ):
        payload = invoice_payload(
            customer_a.id,
            (product_a2["id"], 3, 500),
            (product_a2["id"], 3, 500),
        )
        resp = client.post("/api/invoices", json=payload, headers=headers_a)

        assert resp.status_code == 400
        assert "Requested: 6" in resp.json["error"]
        assert _stock(db_session, product_a2["id"]) == 5

    def test_exact_stock_can_be_sold(self, client, db_session, headers_a, customer_a, product_a2):
        resp = client.post(
            "/api/invoices",
            json=invoice_payload(customer_a.id, (product_a2["id"], 5, 500)),
            headers=headers_a,
        )
        assert resp.status_code == 201
        assert _stock(db_session, product_a2["id"]) == 0

    def test_unknown_product_rejected(self, client, db_session, headers_a, customer_a, product_a):
        payload = invoice_payload(
            customer_a.id,
            (product_a["id"], 1, 1000),
            (99999, 1, 1000),
        )
        resp = client.post("/api/invoices", json=payload, headers=headers_a)

        assert resp.status_code == 400
        assert resp.json["error"] == "Product 99999 not found"
        assert _stock(db_session, product_a["id"]) == 20

    def test_deleted_product_rejected(self, client, db_session, headers_a, customer_a, product_a):
        client.delete(f"/api/products/{product_a['id']}", headers=headers_a)
        resp = client.post(
            "/api/invoices",
            json=invoice_payload(customer_a.id, (product_a["id"], 1, 1000)),
            headers=headers_a,
        )
        assert resp.status_code == 400
        assert "not found" in resp.json["error"]

    def test_unknown_customer_rejected(self, client, db_session, headers_a, product_a):
        resp = client.post(
            "/api/invoices",
            json=invoice_payload(99999, (product_a["id"], 1, 1000)),
            headers=headers_a,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Customer not found"
        assert _stock(db_session, product_a["id"]) == 20

    @pytest.mark.parametrize("payload,message", [
        ({"items": []}, "customer_id is required"),
        ({"customer_id": 1, "items": []}, "items must be a non-empty list"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 0, "unit_price_cents": 100}]},
         "items[0].quantity must be > 0"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 1.5, "unit_price_cents": 100}]},
         "items[0].quantity must be an integer, not a decimal"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 1}]},
         "items[0].unit_price_cents is required"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 100}],
          "tax_amount_cents": -1}, "tax_amount_cents must be >= 0"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 100}],
          "due_date": 20261031}, "due_date must be an ISO-8601 datetime"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 100}],
          "tax_amount_cents": 10**20}, "tax_amount_cents cannot exceed 999999999"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 100}],
          "discount_cents": 10**20}, "discount_cents cannot exceed 999999999"),
        ({"customer_id": 1, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 1000}],
          "discount_cents": 5000}, "discount_cents cannot exceed the invoice subtotal plus tax"),
    ])
    def test_payload_validation(self, client, db_session, headers_a, payload, message):
        resp = client.post("/api/invoices", json=payload, headers=headers_a)
        assert resp.status_code == 400
        assert resp.json["error"] == message


class TestInvoiceStatus:

    def _create(self, client, headers, customer, product, quantity=2):
        resp = client.post(
            "/api/invoices",
            json=invoice_payload(customer.id, (product["id"], quantity, product["price_cents"])),
            headers=headers,
        )
        assert resp.status_code == 201
        return resp.json["invoice"]

    @pytest.mark.parametrize("status", ["PAID", "CANCELLED", "OVERDUE", "PENDING"])
    def test_valid_status_accepted(self, client, db_session, headers_a, customer_a, product_a, status):
        invoice = self._create(client, headers_a, customer_a, product_a)
        resp = client.put(
            f"/api/invoices/{invoice['id']}/status", json={"status": status}, headers=headers_a
        )
        assert resp.status_code == 200
        assert resp.json["invoice"]["status"] == status

    def test_invalid_status_rejected(self, client, db_session, headers_a, customer_a, product_a):
        invoice = self._create(client, headers_a, customer_a, product_a)
        resp = client.put(
            f"/api/invoices/{invoice['id']}/status", json={"status": "SHIPPED"}, headers=headers_a
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid status"

    def test_cancelling_does_not_restore_stock(self, client, db_session, headers_a, customer_a, product_a):
        invoice = self._create(client, headers_a, customer_a, product_a)
        client.put(f"/api/invoices/{invoice['id']}/status", json={"status": "CANCELLED"}, headers=headers_a)
        assert _stock(db_session, product_a["id"]) == 18

    def test_missing_invoice_404(self, client, db_session, headers_a):
        resp = client.put("/api/invoices/99999/status", json={"status": "PAID"}, headers=headers_a)
        assert resp.status_code == 404


class TestDeleteInvoice:

    def _create(self, client, headers, payload):
        resp = client.post("/api/invoices", json=payload, headers=headers)
        assert resp.status_code == 201
        return resp.json["invoice"]

    def test_delete_restores_stock_and_writes_in_movements(
        self, client, db_session, headers_a, customer_a, product_a, product_a2
    ):
        invoice = self._create(client, headers_a, invoice_payload(
            customer_a.id, (product_a["id"], 4, 1000), (product_a2["id"], 2, 500),
        ))
        assert _stock(db_session, product_a["id"]) == 16

        resp = client.delete(f"/api/invoices/{invoice['id']}", headers=headers_a)
        assert resp.status_code == 200

        assert _stock(db_session, product_a["id"]) == 20
        assert _stock(db_session, product_a2["id"]) == 5

        last = _movements(db_session, product_a["id"])[-1]
        assert (last.type, last.quantity, last.reason, last.reference) == (
            "IN", 4, "Invoice cancellation", "INV-0001",
        )
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0

    def test_delete_cancelled_invoice_restores_stock(
        self, client, db_session, headers_a, customer_a, product_a
    ):
        invoice = self._create(client, headers_a, invoice_payload(customer_a.id, (product_a["id"], 3, 1000)))
        client.put(f"/api/invoices/{invoice['id']}/status", json={"status": "CANCELLED"}, headers=headers_a)

        resp = client.delete(f"/api/invoices/{invoice['id']}", headers=headers_a)
        assert resp.status_code == 200
        assert _stock(db_session, product_a["id"]) == 20

    def test_paid_invoice_cannot_be_deleted(self, client, db_session, headers_a, customer_a, product_a):
        invoice = self._create(client, headers_a, invoice_payload(customer_a.id, (product_a["id"], 3, 1000)))
        client.put(f"/api/invoices/{invoice['id']}/status", json={"status": "PAID"}, headers=headers_a)

        resp = client.delete(f"/api/invoices/{invoice['id']}", headers=headers_a)
        assert resp.status_code == 400
        assert resp.json["error"] == "Cannot delete paid invoice"

        assert _stock(db_session, product_a["id"]) == 17
        assert db_session.query(Invoice).count() == 1
        assert db_session.query(StockMovement).filter_by(type="IN", reason="Invoice cancellation").count() == 0

    def test_delete_missing_invoice_404(self, client, db_session, headers_a):
        resp = client.delete("/api/invoices/99999", headers=headers_a)
        assert resp.status_code == 404

    def test_ledger_consistent_after_lifecycle(
        self, client, db_session, headers_a, user_a, customer_a, product_a, product_a2
    ):
        first = self._create(client, headers_a, invoice_payload(customer_a.id, (product_a["id"], 5, 1000)))
        self._create(client, headers_a, invoice_payload(customer_a.id, (product_a2["id"], 2, 500)))
        client.delete(f"/api/invoices/{first['id']}", headers=headers_a)
        client.put(f"/api/products/{product_a2['id']}", json={"stock_quantity": 9}, headers=headers_a)

        db_session.expire_all()
        assert reconcile_stock(user_id=user_a.id) == []


class TestListInvoices:

    def test_list_filters_and_paginates(
        self, client, db_session, headers_a, user_a, customer_a, product_a
    ):
        for _ in range(3):
            client.post(
                "/api/invoices",
                json=invoice_payload(customer_a.id, (product_a["id"], 1, 1000)),
                headers=headers_a,
            )
        paid_id = db_session.query(Invoice.id).order_by(Invoice.id.asc()).first()[0]
        client.put(f"/api/invoices/{paid_id}/status", json={"status": "PAID"}, headers=headers_a)

        resp = client.get("/api/invoices?limit=2", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["pagination"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
        assert [i["invoice_no"] for i in resp.json["invoices"]] == ["INV-0003", "INV-0002"]

        resp = client.get("/api/invoices?status=paid", headers=headers_a)
        assert [i["id"] for i in resp.json["invoices"]] == [paid_id]

        resp = client.get(f"/api/invoices?customer={customer_a.id}", headers=headers_a)
        assert resp.json["pagination"]["total"] == 3

    def test_get_invoice_embeds_items_and_customer(
        self, client, db_session, headers_a, customer_a, product_a
    ):
        created = client.post(
            "/api/invoices",
            json=invoice_payload(customer_a.id, (product_a["id"], 2, 1000)),
            headers=headers_a,
        ).json["invoice"]

        resp = client.get(f"/api/invoices/{created['id']}", headers=headers_a)
        assert resp.status_code == 200
        invoice = resp.json["invoice"]
        assert invoice["customer"]["id"] == customer_a.id
        assert invoice["items"][0]["product"]["sku"] == "A-LAPTOP"

    def test_invalid_status_filter_rejected(self, client, db_session, headers_a):
        resp = client.get("/api/invoices?status=nope", headers=headers_a)
        assert resp.status_code == 400


class TestInvoiceService:
    """Service-level behavior without HTTP."""

    def test_service_raises_invoice_error(self, db_session, user_a, customer_a, product_a2):
        data = {
            "customer_id": customer_a.id,
            "items": [{"product_id": product_a2["id"], "quantity": 50,
                       "unit_price_cents": 500, "discount_cents": 0}],
            "tax_amount_cents": 0,
            "discount_cents": 0,
        }
        with pytest.raises(InvoiceError) as exc:
            invoice_service.create_invoice(user_id=user_a.id, data=data)
        assert exc.value.details["requested"] == 50
