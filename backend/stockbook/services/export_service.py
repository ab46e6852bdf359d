# Overview: CSV and Excel renderings of inventory, sales and stock-movement tables.

"""
Report Export Service

Each report is built once as plain rows and then rendered either as CSV
(stdlib csv) or as an .xlsx workbook (openpyxl). Money is stored in cents;
CSV cells carry "12.34" strings, workbook cells carry Decimal values so that
spreadsheets can sum them.
"""

from __future__ import annotations

import csv
import io
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Category, Invoice, Product, StockMovement
from stockbook.time_utils import to_utc_z


XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

INVENTORY_HEADERS = [
    "SKU", "Name", "Category", "Supplier", "Stock", "Low Stock Threshold",
    "Price", "Cost Price", "Stock Value", "Low Stock",
]
CATEGORY_HEADERS = ["Name", "Description", "Color", "Product Count"]
SALES_HEADERS = [
    "Invoice No", "Date", "Customer", "Status", "Items",
    "Tax", "Discount", "Total",
]
SUMMARY_HEADERS = ["Metric", "Value"]
MOVEMENT_HEADERS = ["Date", "SKU", "Product", "Type", "Quantity", "Reason", "Reference"]


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def cents_to_decimal(cents: int) -> Decimal:
    return Decimal(cents) / 100


def _render(headers: list[str], rows) -> str:
    sio = io.StringIO()
    writer = csv.writer(sio)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return sio.getvalue()


def _render_workbook(sheets: list[tuple[str, list[str], list[list]]]) -> bytes:
    """sheets: (title, headers, rows); the first sheet is the active one."""
    wb = Workbook()
    wb.remove(wb.active)
    for title, headers, rows in sheets:
        ws = wb.create_sheet(title=title)
        ws.append(headers)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        for row in rows:
            ws.append(row)
        ws.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# =============================================================================
# Inventory
# =============================================================================

def _active_products(user_id: int) -> list[Product]:
    return (
        db.session.query(Product)
        .options(joinedload(Product.category))
        .filter(Product.user_id == user_id, Product.is_active.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )


def _inventory_rows(user_id: int, money) -> list[list]:
    return [
        [
            p.sku,
            p.name,
            p.category.name if p.category else "",
            p.supplier,
            p.stock_quantity,
            p.low_stock_threshold,
            money(p.price_cents),
            money(p.cost_price_cents),
            money(p.price_cents * p.stock_quantity),
            "yes" if p.is_low_stock else "no",
        ]
        for p in _active_products(user_id)
    ]


def _category_rows(user_id: int) -> list[list]:
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.user_id == user_id, Product.is_active.is_(True))
        .group_by(Product.category_id)
        .all()
    )
    categories = (
        db.session.query(Category)
        .filter(Category.user_id == user_id)
        .order_by(Category.name.asc(), Category.id.asc())
        .all()
    )
    return [[c.name, c.description, c.color, counts.get(c.id, 0)] for c in categories]


def inventory_csv(*, user_id: int) -> str:
    return _render(INVENTORY_HEADERS, _inventory_rows(user_id, format_cents))


def inventory_xlsx(*, user_id: int) -> bytes:
    """Products sheet plus a Categories sheet with active product counts."""
    return _render_workbook([
        ("Products", INVENTORY_HEADERS, _inventory_rows(user_id, cents_to_decimal)),
        ("Categories", CATEGORY_HEADERS, _category_rows(user_id)),
    ])


# =============================================================================
# Sales
# =============================================================================

def _sales_invoices(*, user_id: int, date_from=None, date_to=None, customer_id=None, status=None) -> list[Invoice]:
    """Invoices oldest first; date bounds are inclusive datetimes."""
    query = (
        db.session.query(Invoice)
        .options(joinedload(Invoice.customer), selectinload(Invoice.items))
        .filter(Invoice.user_id == user_id)
    )
    if date_from is not None:
        query = query.filter(Invoice.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Invoice.created_at <= date_to)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if status:
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.created_at.asc(), Invoice.id.asc()).all()


def _sales_rows(invoices: list[Invoice], money) -> list[list]:
    return [
        [
            inv.invoice_no,
            to_utc_z(inv.created_at),
            inv.customer.name if inv.customer else "",
            inv.status,
            sum(item.quantity for item in inv.items),
            money(inv.tax_amount_cents),
            money(inv.discount_cents),
            money(inv.total_amount_cents),
        ]
        for inv in invoices
    ]


def _sales_summary_rows(invoices: list[Invoice]) -> list[list]:
    total = sum(inv.total_amount_cents for inv in invoices)
    count = len(invoices)
    return [
        ["Total Sales", cents_to_decimal(total)],
        ["Total Invoices", count],
        ["Average Order Value", cents_to_decimal(total // count if count else 0)],
        ["Total Tax", cents_to_decimal(sum(inv.tax_amount_cents for inv in invoices))],
        ["Total Discount", cents_to_decimal(sum(inv.discount_cents for inv in invoices))],
    ]


def sales_csv(*, user_id: int, **filters) -> str:
    """filters: date_from, date_to, customer_id, status (see _sales_invoices)."""
    invoices = _sales_invoices(user_id=user_id, **filters)
    return _render(SALES_HEADERS, _sales_rows(invoices, format_cents))


def sales_xlsx(*, user_id: int, **filters) -> bytes:
    invoices = _sales_invoices(user_id=user_id, **filters)
    return _render_workbook([
        ("Summary", SUMMARY_HEADERS, _sales_summary_rows(invoices)),
        ("Invoices", SALES_HEADERS, _sales_rows(invoices, cents_to_decimal)),
    ])


# =============================================================================
# Stock movements
# =============================================================================

def stock_movements_csv(*, user_id: int, product_id: int | None = None) -> str:
    query = (
        db.session.query(StockMovement)
        .options(joinedload(StockMovement.product))
        .filter(StockMovement.user_id == user_id)
    )
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)

    movements = query.order_by(StockMovement.created_at.asc(), StockMovement.id.asc()).all()
    return _render(MOVEMENT_HEADERS, (
        [
            to_utc_z(m.created_at),
            m.product.sku,
            m.product.name,
            m.type,
            m.quantity,
            m.reason,
            m.reference or "",
        ]
        for m in movements
    ))
