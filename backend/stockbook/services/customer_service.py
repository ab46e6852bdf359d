# backend/stockbook/services/customer_service.py
"""
Customer Service

MULTI-TENANT: Customers are scoped to the owning user.
Email addresses are unique among the user's *active* customers only.
"""
from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Invoice
from ..validation import ConflictError
from .pagination import paginate


class CustomerInUseError(Exception):
    """Raised when deleting a customer that still has invoices."""
    def __init__(self, message: str, invoice_count: int):
        super().__init__(message)
        self.invoice_count = invoice_count


def get_customer(*, customer_id: int, user_id: int, include_inactive: bool = False) -> Customer | None:
    query = db.session.query(Customer).filter(
        Customer.id == customer_id,
        Customer.user_id == user_id,
    )
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    return query.first()


def _ensure_unique_email(*, user_id: int, email: str | None, exclude_id: int | None = None) -> None:
    if not email:
        return
    query = db.session.query(Customer.id).filter(
        Customer.user_id == user_id,
        Customer.is_active.is_(True),
        Customer.email == email,
    )
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError("Customer with this email already exists")


def _invoice_totals(customer_ids: list[int]) -> dict[int, tuple[int, int]]:
    if not customer_ids:
        return {}
    rows = (
        db.session.query(
            Invoice.customer_id,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_amount_cents), 0),
        )
        .filter(Invoice.customer_id.in_(customer_ids))
        .group_by(Invoice.customer_id)
        .all()
    )
    return {customer_id: (int(count), int(total)) for customer_id, count, total in rows}


def list_customers(
    *,
    user_id: int,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """
    Active customers, newest first, each with total_invoices and
    total_spent_cents. search matches name, email or phone.
    """
    query = db.session.query(Customer).filter(
        Customer.user_id == user_id,
        Customer.is_active.is_(True),
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))
    query = query.order_by(Customer.created_at.desc(), Customer.id.desc())

    rows, pagination = paginate(query, page=page, limit=limit)
    totals = _invoice_totals([c.id for c in rows])

    customers = []
    for customer in rows:
        count, spent = totals.get(customer.id, (0, 0))
        data = customer.to_dict()
        data["total_invoices"] = count
        data["total_spent_cents"] = spent
        customers.append(data)

    return {"customers": customers, "pagination": pagination}


def get_customer_detail(*, customer_id: int, user_id: int) -> dict | None:
    """Customer with invoice list (newest first) and lifetime totals."""
    customer = get_customer(customer_id=customer_id, user_id=user_id)
    if customer is None:
        return None

    invoices = (
        db.session.query(Invoice)
        .filter(Invoice.customer_id == customer.id, Invoice.user_id == user_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .all()
    )
    data = customer.to_dict()
    data["invoices"] = [inv.to_dict(include_items=False) for inv in invoices]
    data["total_invoices"] = len(invoices)
    data["total_spent_cents"] = sum(inv.total_amount_cents for inv in invoices)
    return data


def create_customer(*, user_id: int, patch: dict) -> dict:
    _ensure_unique_email(user_id=user_id, email=patch.get("email"))

    customer = Customer(user_id=user_id, **patch)
    db.session.add(customer)
    db.session.commit()
    return customer.to_dict()


def update_customer(*, customer_id: int, user_id: int, patch: dict) -> dict | None:
    customer = get_customer(customer_id=customer_id, user_id=user_id)
    if customer is None:
        return None

    if patch.get("email") and patch["email"] != customer.email:
        _ensure_unique_email(user_id=user_id, email=patch["email"], exclude_id=customer.id)

    for key, value in patch.items():
        setattr(customer, key, value)

    db.session.commit()
    return customer.to_dict()


def delete_customer(*, customer_id: int, user_id: int) -> bool:
    """
    Soft delete (is_active=False).

    Returns False if the customer does not exist for this user.
    Raises CustomerInUseError while any invoice references the customer.
    """
    customer = get_customer(customer_id=customer_id, user_id=user_id)
    if customer is None:
        return False

    invoice_count = (
        db.session.query(func.count(Invoice.id))
        .filter(Invoice.customer_id == customer.id)
        .scalar()
    )
    if invoice_count:
        raise CustomerInUseError(
            "Cannot delete customer with associated invoices",
            invoice_count=invoice_count,
        )

    customer.is_active = False
    db.session.commit()
    return True
