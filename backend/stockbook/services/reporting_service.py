# Overview: Dashboard and analytics aggregation over a tenant's catalog and invoices.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Category, Customer, Invoice, InvoiceItem, Product
from ..models.invoices import INVOICE_STATUSES
from stockbook.time_utils import (
    day_key,
    end_of_day_if_date_only,
    month_label,
    parse_iso_datetime,
    shift_month,
    to_utc_z,
    utcnow,
)


MONTHLY_BUCKETS = 6
DAILY_BUCKETS = 30
TOP_N = 10
RECENT_INVOICES = 5


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _parse_range(date_from: str | None, date_to: str | None) -> tuple[datetime | None, datetime | None]:
    """Inclusive bounds; a bare YYYY-MM-DD upper bound covers the whole day."""
    try:
        start_dt = parse_iso_datetime(date_from) if date_from else None
        end_dt = parse_iso_datetime(date_to) if date_to else None
    except ValueError:
        raise ReportError("date_from/date_to must be ISO-8601 dates")
    end_dt = end_of_day_if_date_only(date_to, end_dt)
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("date_from must be on or before date_to")
    return start_dt, end_dt


def _parse_id_filter(value: str | None, field: str) -> int | None:
    if value is None or value == "" or value == "all":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ReportError(f"{field} must be an id or 'all'")


# =============================================================================
# Dashboard
# =============================================================================

def _monthly_sales(user_id: int, today: date) -> list[dict]:
    first_year, first_month = shift_month(today.year, today.month, -(MONTHLY_BUCKETS - 1))
    since = datetime(first_year, first_month, 1)

    buckets: dict[tuple[int, int], dict] = {}
    order = []
    for offset in range(MONTHLY_BUCKETS - 1, -1, -1):
        year, month = shift_month(today.year, today.month, -offset)
        buckets[(year, month)] = {
            "month": month_label(year, month),
            "sales_cents": 0,
            "invoices": 0,
        }
        order.append((year, month))

    rows = (
        db.session.query(Invoice.created_at, Invoice.total_amount_cents)
        .filter(Invoice.user_id == user_id, Invoice.created_at >= since)
        .all()
    )
    for created_at, total in rows:
        bucket = buckets.get((created_at.year, created_at.month))
        if bucket is None:
            continue
        bucket["sales_cents"] += total
        bucket["invoices"] += 1

    return [buckets[key] for key in order]


def dashboard_stats(*, user_id: int) -> dict:
    """
    Headline numbers for the dashboard.

    Inventory figures cover active products only. Sales figures cover every
    invoice regardless of status.
    """
    total_products = (
        db.session.query(func.count(Product.id))
        .filter(Product.user_id == user_id, Product.is_active.is_(True))
        .scalar()
    )
    total_categories = (
        db.session.query(func.count(Category.id))
        .filter(Category.user_id == user_id)
        .scalar()
    )
    total_customers = (
        db.session.query(func.count(Customer.id))
        .filter(Customer.user_id == user_id, Customer.is_active.is_(True))
        .scalar()
    )

    invoice_counts = dict(
        db.session.query(Invoice.status, func.count(Invoice.id))
        .filter(Invoice.user_id == user_id)
        .group_by(Invoice.status)
        .all()
    )
    total_sales = (
        db.session.query(func.coalesce(func.sum(Invoice.total_amount_cents), 0))
        .filter(Invoice.user_id == user_id)
        .scalar()
    )

    products = (
        db.session.query(Product)
        .options(joinedload(Product.category))
        .filter(Product.user_id == user_id, Product.is_active.is_(True))
        .all()
    )
    low_stock = sorted(
        (p for p in products if p.is_low_stock),
        key=lambda p: (p.stock_quantity, p.id),
    )

    recent = (
        db.session.query(Invoice)
        .options(joinedload(Invoice.customer))
        .filter(Invoice.user_id == user_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(RECENT_INVOICES)
        .all()
    )

    return {
        "total_products": total_products,
        "total_categories": total_categories,
        "total_customers": total_customers,
        "total_invoices": sum(invoice_counts.values()),
        "total_inventory_value_cents": sum(p.price_cents * p.stock_quantity for p in products),
        "total_stock_quantity": sum(p.stock_quantity for p in products),
        "low_stock_products": len(low_stock),
        "total_sales_cents": int(total_sales or 0),
        "pending_invoices": invoice_counts.get("PENDING", 0),
        "paid_invoices": invoice_counts.get("PAID", 0),
        "low_stock_items": [
            {
                "id": p.id,
                "name": p.name,
                "current_stock": p.stock_quantity,
                "threshold": p.low_stock_threshold,
                "category": p.category.name if p.category else None,
            }
            for p in low_stock
        ],
        "recent_invoices": [
            {
                "id": inv.id,
                "invoice_no": inv.invoice_no,
                "customer": inv.customer.name if inv.customer else None,
                "amount_cents": inv.total_amount_cents,
                "status": inv.status,
                "date": to_utc_z(inv.created_at),
            }
            for inv in recent
        ],
        "monthly_sales": _monthly_sales(user_id, utcnow().date()),
    }


# =============================================================================
# Analytics
# =============================================================================

def _daily_sales(user_id: int, today: date) -> list[dict]:
    """
    Last 30 calendar days ending today, one database GROUP BY on the day.

    Not affected by the analytics filters.
    """
    first_day = today - timedelta(days=DAILY_BUCKETS - 1)
    day = func.date(Invoice.created_at)

    rows = (
        db.session.query(
            day.label("day"),
            func.coalesce(func.sum(Invoice.total_amount_cents), 0),
            func.count(Invoice.id),
        )
        .filter(
            Invoice.user_id == user_id,
            Invoice.created_at >= datetime(first_day.year, first_day.month, first_day.day),
        )
        .group_by(day)
        .all()
    )
    by_day = {day_key(d): (int(sales), int(count)) for d, sales, count in rows}

    series = []
    for offset in range(DAILY_BUCKETS):
        key = (first_day + timedelta(days=offset)).isoformat()
        sales, count = by_day.get(key, (0, 0))
        series.append({"date": key, "sales_cents": sales, "invoices": count})
    return series


def analytics(
    *,
    user_id: int,
    date_from: str | None = None,
    date_to: str | None = None,
    category: str | None = None,
    customer: str | None = None,
) -> dict:
    """
    Sales analytics, recomputed from scratch on every call.

    Filters:
    - date_from / date_to: inclusive bounds on invoice creation time
    - customer: customer id, or "all"
    - category: category id, or "all". Keeps only invoices with at least
      one item in that category, and item-level aggregates (top products,
      category performance) count only that category's items.

    Raises ReportError on malformed filters.
    """
    start_dt, end_dt = _parse_range(date_from, date_to)
    category_id = _parse_id_filter(category, "category")
    customer_id = _parse_id_filter(customer, "customer")

    query = (
        db.session.query(Invoice)
        .options(
            joinedload(Invoice.customer),
            selectinload(Invoice.items)
            .joinedload(InvoiceItem.product)
            .joinedload(Product.category),
        )
        .filter(Invoice.user_id == user_id)
    )
    if start_dt is not None:
        query = query.filter(Invoice.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Invoice.created_at <= end_dt)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if category_id is not None:
        query = query.filter(
            Invoice.items.any(
                InvoiceItem.product.has(Product.category_id == category_id)
            )
        )
    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()

    total_sales = sum(inv.total_amount_cents for inv in invoices)
    total_invoices = len(invoices)

    sales_by_status = {status: 0 for status in INVOICE_STATUSES}
    product_sales: dict[int, dict] = {}
    customer_sales: dict[int, dict] = {}
    category_sales: dict[int, dict] = {}

    for inv in invoices:
        sales_by_status[inv.status] = sales_by_status.get(inv.status, 0) + inv.total_amount_cents

        cust = customer_sales.setdefault(inv.customer_id, {
            "name": inv.customer.name,
            "total_spent_cents": 0,
            "invoice_count": 0,
        })
        cust["total_spent_cents"] += inv.total_amount_cents
        cust["invoice_count"] += 1

        for item in inv.items:
            product = item.product
            if category_id is not None and product.category_id != category_id:
                continue

            prod = product_sales.setdefault(product.id, {
                "name": product.name,
                "quantity": 0,
                "revenue_cents": 0,
                "category": product.category.name,
            })
            prod["quantity"] += item.quantity
            prod["revenue_cents"] += item.total_cents

            cat = category_sales.setdefault(product.category_id, {
                "name": product.category.name,
                "revenue_cents": 0,
                "quantity": 0,
            })
            cat["revenue_cents"] += item.total_cents
            cat["quantity"] += item.quantity

    return {
        "total_sales_cents": total_sales,
        "total_invoices": total_invoices,
        "average_order_value_cents": total_sales // total_invoices if total_invoices else 0,
        "total_tax_cents": sum(inv.tax_amount_cents for inv in invoices),
        "total_discount_cents": sum(inv.discount_cents for inv in invoices),
        "sales_by_status": sales_by_status,
        "top_products": sorted(
            product_sales.values(), key=lambda p: p["revenue_cents"], reverse=True
        )[:TOP_N],
        "top_customers": sorted(
            customer_sales.values(), key=lambda c: c["total_spent_cents"], reverse=True
        )[:TOP_N],
        "category_performance": sorted(
            category_sales.values(), key=lambda c: c["revenue_cents"], reverse=True
        ),
        "daily_sales": _daily_sales(user_id, utcnow().date()),
        "date_range": {"from": date_from, "to": date_to},
        "filters": {"category": category, "customer": customer},
    }
