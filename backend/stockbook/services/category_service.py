# backend/stockbook/services/category_service.py
"""
Category Service

MULTI-TENANT: Every function takes the owning user_id and only ever touches
that user's rows. A category that exists but belongs to someone else is
reported exactly like a missing one.
"""
from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Category, Product
from ..validation import ConflictError


class CategoryInUseError(Exception):
    """Raised when deleting a category that still has products."""
    def __init__(self, message: str, product_count: int):
        super().__init__(message)
        self.product_count = product_count


def get_category(*, category_id: int, user_id: int) -> Category | None:
    return (
        db.session.query(Category)
        .filter(Category.id == category_id, Category.user_id == user_id)
        .first()
    )


def _ensure_unique_name(*, user_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(
        Category.user_id == user_id,
        func.lower(Category.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError("Category with this name already exists")


def _category_row(category: Category) -> dict:
    data = category.to_dict()
    products = [p for p in category.products if p.is_active]
    data["products"] = [p.to_summary() for p in products]
    data["product_count"] = len(products)
    return data


def list_categories(*, user_id: int) -> list[dict]:
    """All of the user's categories, alphabetical, with active product summaries."""
    categories = (
        db.session.query(Category)
        .filter(Category.user_id == user_id)
        .order_by(Category.name.asc(), Category.id.asc())
        .all()
    )
    return [_category_row(c) for c in categories]


def get_category_detail(*, category_id: int, user_id: int) -> dict | None:
    category = get_category(category_id=category_id, user_id=user_id)
    if category is None:
        return None
    data = category.to_dict()
    data["products"] = [
        p.to_dict(include_category=False)
        for p in category.products
        if p.is_active
    ]
    data["product_count"] = len(data["products"])
    return data


def create_category(*, user_id: int, patch: dict) -> dict:
    """
    Create a category from a validated patch.

    Raises ConflictError if the user already has a category with this name.
    """
    _ensure_unique_name(user_id=user_id, name=patch["name"])

    category = Category(user_id=user_id, **patch)
    db.session.add(category)
    db.session.commit()
    return _category_row(category)


def update_category(*, category_id: int, user_id: int, patch: dict) -> dict | None:
    category = get_category(category_id=category_id, user_id=user_id)
    if category is None:
        return None

    if "name" in patch:
        _ensure_unique_name(user_id=user_id, name=patch["name"], exclude_id=category.id)

    for key, value in patch.items():
        setattr(category, key, value)

    db.session.commit()
    return _category_row(category)


def delete_category(*, category_id: int, user_id: int) -> bool:
    """
    Hard-delete a category.

    Blocked while ANY product references it, including soft-deleted ones,
    since products keep a non-null category_id.

    Returns False if the category does not exist for this user.
    Raises CategoryInUseError with the dependent product count.
    """
    category = get_category(category_id=category_id, user_id=user_id)
    if category is None:
        return False

    product_count = (
        db.session.query(func.count(Product.id))
        .filter(Product.category_id == category.id)
        .scalar()
    )
    if product_count:
        raise CategoryInUseError(
            "Cannot delete category with associated products",
            product_count=product_count,
        )

    db.session.delete(category)
    db.session.commit()
    return True
