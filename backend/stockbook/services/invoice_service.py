# Overview: Invoice lifecycle: creation with stock decrement, status changes, deletion with restock.

"""
Invoice Service

INVARIANTS:
- Creation is all-or-nothing: every line is validated against current stock
  (quantities summed per product) before any row is written, then the
  invoice, its items, the stock decrements and one OUT movement per line
  commit in a single transaction.
- Deletion is allowed for any status except PAID. It restores each line's
  quantity with an IN movement in the same transaction as the delete.
- Status changes never touch stock.
- Product rows are locked (SELECT ... FOR UPDATE) and version-checked;
  conflicts are retried by run_with_retry.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Product
from ..validation import validate_invoice_status
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_invoice_number
from .inventory_service import (
    REASON_INVOICE_CANCELLATION,
    REASON_SALE,
    apply_stock_delta,
)
from .pagination import paginate


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def line_total_cents(*, quantity: int, unit_price_cents: int, discount_cents: int = 0) -> int:
    return unit_price_cents * quantity - discount_cents


def invoice_total_cents(*, items: list[dict], tax_amount_cents: int = 0, discount_cents: int = 0) -> int:
    subtotal = sum(
        line_total_cents(
            quantity=i["quantity"],
            unit_price_cents=i["unit_price_cents"],
            discount_cents=i.get("discount_cents", 0),
        )
        for i in items
    )
    return subtotal + tax_amount_cents - discount_cents


def _invoice_query(user_id: int):
    return (
        db.session.query(Invoice)
        .options(
            joinedload(Invoice.customer),
            selectinload(Invoice.items).joinedload(InvoiceItem.product),
        )
        .filter(Invoice.user_id == user_id)
    )


def get_invoice(*, invoice_id: int, user_id: int) -> Invoice | None:
    return _invoice_query(user_id).filter(Invoice.id == invoice_id).first()


def list_invoices(
    *,
    user_id: int,
    customer_id: int | None = None,
    status: str | None = None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """Tenant-scoped invoices, newest first. date_from/date_to are inclusive datetimes."""
    query = _invoice_query(user_id)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if status:
        query = query.filter(Invoice.status == status)
    if date_from is not None:
        query = query.filter(Invoice.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Invoice.created_at <= date_to)
    query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc())

    rows, pagination = paginate(query, page=page, limit=limit)
    return {"invoices": [inv.to_dict() for inv in rows], "pagination": pagination}


def _lock_products(user_id: int, product_ids: list[int]) -> dict[int, Product]:
    products = (
        lock_for_update(
            db.session.query(Product).filter(
                Product.id.in_(product_ids),
                Product.user_id == user_id,
                Product.is_active.is_(True),
            )
        )
        .order_by(Product.id.asc())
        .all()
    )
    return {p.id: p for p in products}


def _validate_stock(products: dict[int, Product], requested: dict[int, int]) -> None:
    for product_id, quantity in requested.items():
        product = products.get(product_id)
        if product is None:
            raise InvoiceError(f"Product {product_id} not found", {"product_id": product_id})
        if product.stock_quantity < quantity:
            raise InvoiceError(
                f"Insufficient stock for {product.name}. "
                f"Available: {product.stock_quantity}, Requested: {quantity}",
                {
                    "product_id": product_id,
                    "available": product.stock_quantity,
                    "requested": quantity,
                },
            )


def create_invoice(*, user_id: int, data: dict) -> Invoice:
    """
    Create an invoice from a payload normalized by validate_invoice_payload.

    Raises InvoiceError (nothing written) when the customer or a product is
    missing for this user, or when requested quantities exceed stock.
    """
    items = data["items"]

    requested: dict[int, int] = {}
    for item in items:
        requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity"]

    def _op() -> Invoice:
        customer = (
            db.session.query(Customer)
            .filter(
                Customer.id == data["customer_id"],
                Customer.user_id == user_id,
                Customer.is_active.is_(True),
            )
            .first()
        )
        if customer is None:
            raise InvoiceError("Customer not found", {"customer_id": data["customer_id"]})

        products = _lock_products(user_id, sorted(requested))
        _validate_stock(products, requested)

        invoice_no = next_invoice_number(user_id=user_id)
        invoice = Invoice(
            user_id=user_id,
            customer_id=customer.id,
            invoice_no=invoice_no,
            tax_amount_cents=data.get("tax_amount_cents", 0),
            discount_cents=data.get("discount_cents", 0),
            total_amount_cents=invoice_total_cents(
                items=items,
                tax_amount_cents=data.get("tax_amount_cents", 0),
                discount_cents=data.get("discount_cents", 0),
            ),
            status="PENDING",
            due_date=data.get("due_date"),
            notes=data.get("notes"),
        )
        db.session.add(invoice)

        for item in items:
            product = products[item["product_id"]]
            invoice.items.append(InvoiceItem(
                product_id=product.id,
                quantity=item["quantity"],
                unit_price_cents=item["unit_price_cents"],
                discount_cents=item.get("discount_cents", 0),
                total_cents=line_total_cents(
                    quantity=item["quantity"],
                    unit_price_cents=item["unit_price_cents"],
                    discount_cents=item.get("discount_cents", 0),
                ),
            ))
            apply_stock_delta(
                product=product,
                delta=-item["quantity"],
                reason=REASON_SALE,
                reference=invoice_no,
            )

        db.session.commit()
        return invoice

    try:
        invoice = run_with_retry(_op)
    except InvoiceError:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Created invoice %s id=%s user_id=%s total_cents=%s lines=%d",
        invoice.invoice_no, invoice.id, user_id, invoice.total_amount_cents, len(items),
    )
    return invoice


def update_invoice_status(*, invoice_id: int, user_id: int, status) -> Invoice | None:
    """
    Set invoice status to one of PENDING, PAID, CANCELLED, OVERDUE.

    Raises InvoiceError("Invalid status") for anything else.
    """
    try:
        status = validate_invoice_status(status)
    except ValueError:
        raise InvoiceError("Invalid status", {"allowed": ["PENDING", "PAID", "CANCELLED", "OVERDUE"]})

    invoice = get_invoice(invoice_id=invoice_id, user_id=user_id)
    if invoice is None:
        return None

    invoice.status = status
    db.session.commit()
    return invoice


def delete_invoice(*, invoice_id: int, user_id: int) -> bool:
    """
    Delete an invoice and restore the stock it consumed.

    Returns False if the invoice does not exist for this user.
    Raises InvoiceError for PAID invoices (no state change).
    """
    def _op() -> bool:
        invoice = (
            db.session.query(Invoice)
            .filter(Invoice.id == invoice_id, Invoice.user_id == user_id)
            .first()
        )
        if invoice is None:
            return False
        if invoice.status == "PAID":
            raise InvoiceError("Cannot delete paid invoice", {"status": invoice.status})

        invoice_no = invoice.invoice_no
        line_count = len(invoice.items)
        product_ids = sorted({item.product_id for item in invoice.items})
        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product).filter(Product.id.in_(product_ids))
            ).order_by(Product.id.asc()).all()
        }

        for item in invoice.items:
            apply_stock_delta(
                product=products[item.product_id],
                delta=item.quantity,
                reason=REASON_INVOICE_CANCELLATION,
                reference=invoice_no,
            )

        db.session.delete(invoice)
        db.session.commit()
        current_app.logger.info(
            "Deleted invoice %s id=%s user_id=%s, restored %d line(s)",
            invoice_no, invoice_id, user_id, line_count,
        )
        return True

    try:
        return run_with_retry(_op)
    except InvoiceError:
        db.session.rollback()
        raise
