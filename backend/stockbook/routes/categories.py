# backend/stockbook/routes/categories.py
"""
Category routes.

MULTI-TENANT: Every query is scoped to g.user_id (set by @require_auth);
another user's category id behaves exactly like a missing one.
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..models import Category
from ..services import category_service
from ..services.category_service import CategoryInUseError
from ..validation import (
    CATEGORY_POLICY,
    validate_payload,
    enforce_rules_category,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    return {"categories": category_service.list_categories(user_id=g.user_id)}


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    category = category_service.get_category_detail(category_id=category_id, user_id=g.user_id)
    if category is None:
        return {"error": "Category not found"}, 404
    return {"category": category}


@categories_bp.post("")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        enforce_rules_category(patch)
        created = category_service.create_category(user_id=g.user_id, patch=patch)
    except (ValidationError, ConflictError) as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500

    return {"message": "Category created successfully", "category": created}, 201


@categories_bp.put("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        enforce_rules_category(patch)
        updated = category_service.update_category(
            category_id=category_id, user_id=g.user_id, patch=patch,
        )
    except (ValidationError, ConflictError) as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update category")
        return {"error": "Internal server error"}, 500

    if updated is None:
        return {"error": "Category not found"}, 404
    return {"message": "Category updated successfully", "category": updated}


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    """Hard delete; 400 with product_count while products reference it."""
    try:
        deleted = category_service.delete_category(category_id=category_id, user_id=g.user_id)
    except CategoryInUseError as e:
        return {"error": str(e), "product_count": e.product_count}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete category")
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Category not found"}, 404
    return {"message": "Category deleted successfully"}
