# Overview: Stock ledger writes, movement queries and stock reconciliation.

"""
Stock Ledger Invariants (authoritative)

- Product.stock_quantity is the stored on-hand quantity and is never negative.
- Every change to stock_quantity appends exactly one StockMovement in the
  same DB transaction. Helpers here only add rows to the session; the caller
  owns the commit.
- Signed ledger sum per product: IN = +q, OUT = -q, ADJUSTMENT = q (signed).
  For every product, the signed sum equals stock_quantity.
- Movements are append-only (never updated or deleted).
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from sqlalchemy import case, func

from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES
from .pagination import paginate


REASON_INITIAL_STOCK = "Initial stock"
REASON_STOCK_ADJUSTMENT = "Stock adjustment"
REASON_SALE = "Sale"
REASON_INVOICE_CANCELLATION = "Invoice cancellation"


def record_movement(
    *,
    product: Product,
    movement_type: str,
    quantity: int,
    reason: str,
    reference: str | None = None,
) -> StockMovement:
    """
    Add a StockMovement for product to the current session (no commit).

    IN/OUT quantities must be positive; ADJUSTMENT must be non-zero.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Invalid movement type: {movement_type}")
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity == 0:
            raise ValueError("ADJUSTMENT quantity must be non-zero")
    elif quantity <= 0:
        raise ValueError(f"{movement_type} quantity must be > 0")

    movement = StockMovement(
        user_id=product.user_id,
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        reference=reference,
    )
    db.session.add(movement)
    return movement


def apply_stock_delta(
    *,
    product: Product,
    delta: int,
    reason: str,
    reference: str | None = None,
) -> StockMovement | None:
    """
    Change product.stock_quantity by delta and record the matching IN/OUT row.

    No-op for delta == 0. Raises ValueError if the result would be negative.
    """
    if delta == 0:
        return None
    new_quantity = product.stock_quantity + delta
    if new_quantity < 0:
        raise ValueError(
            f"Insufficient stock for {product.name}. "
            f"Available: {product.stock_quantity}, Requested: {-delta}"
        )
    product.stock_quantity = new_quantity
    return record_movement(
        product=product,
        movement_type=MOVEMENT_IN if delta > 0 else MOVEMENT_OUT,
        quantity=abs(delta),
        reason=reason,
        reference=reference,
    )


def recent_movements(*, product_id: int, limit: int = 10) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_movements(
    *,
    user_id: int,
    product_id: int | None = None,
    movement_type: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """Tenant-scoped movement listing, newest first."""
    query = db.session.query(StockMovement).filter(StockMovement.user_id == user_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())

    rows, pagination = paginate(query, page=page, limit=limit)
    return {"movements": [m.to_dict() for m in rows], "pagination": pagination}


def _signed_quantity_expr():
    return case(
        (StockMovement.type == MOVEMENT_OUT, -StockMovement.quantity),
        else_=StockMovement.quantity,
    )


@dataclass
class StockDiscrepancy:
    product_id: int
    user_id: int
    sku: str
    name: str
    stock_quantity: int
    ledger_quantity: int

    @property
    def difference(self) -> int:
        return self.stock_quantity - self.ledger_quantity

    def to_dict(self) -> dict:
        data = asdict(self)
        data["difference"] = self.difference
        return data


def reconcile_stock(*, user_id: int | None = None) -> list[StockDiscrepancy]:
    """
    Compare each product's stock_quantity with its signed ledger sum.

    Includes soft-deleted products. Scoped to user_id when given, otherwise
    covers every tenant. Returns only the products that disagree.
    """
    ledger = (
        db.session.query(
            StockMovement.product_id.label("product_id"),
            func.sum(_signed_quantity_expr()).label("ledger_quantity"),
        )
        .group_by(StockMovement.product_id)
        .subquery()
    )

    query = (
        db.session.query(Product, func.coalesce(ledger.c.ledger_quantity, 0))
        .outerjoin(ledger, ledger.c.product_id == Product.id)
    )
    if user_id is not None:
        query = query.filter(Product.user_id == user_id)

    discrepancies = []
    for product, ledger_quantity in query.order_by(Product.id.asc()).all():
        ledger_quantity = int(ledger_quantity or 0)
        if ledger_quantity != product.stock_quantity:
            discrepancies.append(StockDiscrepancy(
                product_id=product.id,
                user_id=product.user_id,
                sku=product.sku,
                name=product.name,
                stock_quantity=product.stock_quantity,
                ledger_quantity=ledger_quantity,
            ))
    return discrepancies
