# backend/stockbook/services/products_service.py
"""
Products Service

MULTI-TENANT: All product operations are scoped to the owning user.
- SKU is unique across ALL tenants (database constraint + pre-check)
- category_id must reference one of the same user's categories
- Inactive (soft-deleted) products are invisible to reads and writes

Every stock change goes through inventory_service so that the product row
and its StockMovement commit together.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Category, Product
from ..validation import ConflictError, ValidationError
from .inventory_service import (
    REASON_INITIAL_STOCK,
    REASON_STOCK_ADJUSTMENT,
    apply_stock_delta,
    recent_movements,
)
from .pagination import paginate

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "sku", "category_id", "price_cents",
    "cost_price_cents", "low_stock_threshold", "supplier",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(*, product_id: int, user_id: int, include_inactive: bool = False) -> Product | None:
    query = db.session.query(Product).filter(
        Product.id == product_id,
        Product.user_id == user_id,
    )
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.first()


def _require_category(*, category_id: int, user_id: int) -> Category:
    category = (
        db.session.query(Category)
        .filter(Category.id == category_id, Category.user_id == user_id)
        .first()
    )
    if category is None:
        raise ValidationError("Category not found")
    return category


def _ensure_unique_sku(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("Product with this SKU already exists")


def list_products(
    *,
    user_id: int,
    category_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """
    Tenant-scoped active product listing, newest first.

    search matches name, description or SKU case-insensitively.
    """
    query = db.session.query(Product).filter(
        Product.user_id == user_id,
        Product.is_active.is_(True),
    )
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.sku.ilike(pattern),
        ))
    query = query.order_by(Product.created_at.desc(), Product.id.desc())

    rows, pagination = paginate(query, page=page, limit=limit)
    return {"products": [p.to_dict() for p in rows], "pagination": pagination}


def get_product_detail(*, product_id: int, user_id: int) -> dict | None:
    """Product with its category and 10 most recent stock movements."""
    product = get_product(product_id=product_id, user_id=user_id)
    if product is None:
        return None
    data = product.to_dict()
    data["stock_movements"] = [m.to_dict() for m in recent_movements(product_id=product.id)]
    return data


def list_low_stock(*, user_id: int) -> list[dict]:
    """Active products at or below their threshold, lowest stock first."""
    products = (
        db.session.query(Product)
        .filter(
            Product.user_id == user_id,
            Product.is_active.is_(True),
            Product.stock_quantity <= Product.low_stock_threshold,
        )
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )
    return [p.to_dict() for p in products]


def create_product(*, user_id: int, patch: dict) -> dict:
    """
    Create product from a validated patch dict.

    Writes an initial IN movement (reason "Initial stock") in the same
    transaction when the opening stock is positive.

    Raises:
        ValidationError: category not found for this user
        ConflictError: SKU already exists (any tenant)
    """
    _require_category(category_id=patch["category_id"], user_id=user_id)
    _ensure_unique_sku(patch["sku"])

    opening_stock = patch.get("stock_quantity", 0)

    p = Product(user_id=user_id, stock_quantity=0)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.flush()

    apply_stock_delta(product=p, delta=opening_stock, reason=REASON_INITIAL_STOCK)

    db.session.commit()
    current_app.logger.info(
        "Created product id=%s sku=%s user_id=%s stock=%s",
        p.id, p.sku, user_id, p.stock_quantity,
    )
    return p.to_dict()


def update_product(*, product_id: int, user_id: int, patch: dict) -> dict | None:
    """
    Update a product; a stock_quantity change is recorded as an IN/OUT
    movement (reason "Stock adjustment") in the same transaction.

    Returns None if the product does not exist for this user.
    Raises ValidationError / ConflictError like create_product.
    """
    p = get_product(product_id=product_id, user_id=user_id)
    if p is None:
        return None

    if "category_id" in patch and patch["category_id"] != p.category_id:
        _require_category(category_id=patch["category_id"], user_id=user_id)
    if "sku" in patch and patch["sku"] != p.sku:
        _ensure_unique_sku(patch["sku"], exclude_id=p.id)

    apply_product_patch(p, patch)

    if "stock_quantity" in patch:
        delta = patch["stock_quantity"] - p.stock_quantity
        try:
            apply_stock_delta(product=p, delta=delta, reason=REASON_STOCK_ADJUSTMENT)
        except ValueError as e:
            db.session.rollback()
            raise ValidationError(str(e))
        if delta:
            current_app.logger.info(
                "Stock adjustment product_id=%s delta=%+d new_quantity=%s",
                p.id, delta, p.stock_quantity,
            )

    db.session.commit()
    return p.to_dict()


def delete_product(*, product_id: int, user_id: int) -> bool:
    """
    Soft delete (is_active=False). Stock and movements are left untouched so
    historical invoices and the ledger stay intact.
    """
    p = get_product(product_id=product_id, user_id=user_id)
    if p is None:
        return False
    p.is_active = False
    db.session.commit()
    return True
