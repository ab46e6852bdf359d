from __future__ import annotations

from ..extensions import db
from stockbook.time_utils import to_utc_z


INVOICE_STATUSES = ("PENDING", "PAID", "CANCELLED", "OVERDUE")


class Invoice(db.Model):
    """
    Customer invoice.

    Totals are derived at creation time from the line items, tax and
    order-level discount and are not recomputed afterwards.
    invoice_no is allocated from InvoiceSequence (see document_service).
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("user_id", "invoice_no", name="uq_invoices_user_invoice_no"),
        db.Index("ix_invoices_user_status_created", "user_id", "status", "created_at"),
        db.Index("ix_invoices_user_customer", "user_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Human-readable number (e.g., "INV-0042")
    invoice_no = db.Column(db.String(32), nullable=False)

    # All amounts in cents
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} invoice_no={self.invoice_no!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "invoice_no": self.invoice_no,
            "customer_id": self.customer_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "total_amount_cents": self.total_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "discount_cents": self.discount_cents,
            "status": self.status,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """Invoice line. Price and total are snapshots, never recomputed from the product."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.Index("ix_invoice_items_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


class InvoiceSequence(db.Model):
    """
    Atomic per-user invoice number sequence.

    One counter row per user, incremented in place by document_service.
    Numbers are never reused, even after an invoice is deleted.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_invoice_sequences_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
