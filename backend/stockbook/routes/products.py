# backend/stockbook/routes/products.py
"""
Product management routes.

MULTI-TENANT: All product operations are scoped to g.user_id.
Stock changes made through PUT are written to the stock ledger in the same
transaction (see products_service.update_product).
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..models import Product
from ..services import products_service, inventory_service
from ..services.pagination import parse_pagination
from ..validation import (
    PRODUCT_POLICY,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List active products, newest first.

    Query params:
    - category: int (optional) - category id
    - search: str (optional) - matches name, description or SKU
    - page / limit: pagination (default 1 / 50, limit max 100)
    """
    try:
        page, limit = parse_pagination(request.args)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return products_service.list_products(
        user_id=g.user_id,
        category_id=request.args.get("category", type=int),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )


@products_bp.get("/low-stock/alert")
@require_auth
def low_stock_route():
    """Active products at or below their low-stock threshold, lowest stock first."""
    return {"products": products_service.list_low_stock(user_id=g.user_id)}


@products_bp.get("/stock/reconcile")
@require_auth
def reconcile_route():
    """Products whose stock_quantity disagrees with their movement ledger."""
    discrepancies = inventory_service.reconcile_stock(user_id=g.user_id)
    return {
        "discrepancies": [d.to_dict() for d in discrepancies],
        "count": len(discrepancies),
    }


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = products_service.get_product_detail(product_id=product_id, user_id=g.user_id)
    if product is None:
        return {"error": "Product not found"}, 404
    return {"product": product}


@products_bp.get("/<int:product_id>/movements")
@require_auth
def product_movements_route(product_id: int):
    """Stock movements for one product, newest first. Optional type=IN|OUT|ADJUSTMENT."""
    product = products_service.get_product(
        product_id=product_id, user_id=g.user_id, include_inactive=True,
    )
    if product is None:
        return {"error": "Product not found"}, 404

    try:
        page, limit = parse_pagination(request.args)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return inventory_service.list_movements(
        user_id=g.user_id,
        product_id=product.id,
        movement_type=request.args.get("type"),
        page=page,
        limit=limit,
    )


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(user_id=g.user_id, patch=patch)
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"message": "Product created successfully", "product": created}, 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(
            product_id=product_id, user_id=g.user_id, patch=patch,
        )
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    if updated is None:
        return {"error": "Product not found"}, 404
    return {"message": "Product updated successfully", "product": updated}


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Soft delete."""
    if not products_service.delete_product(product_id=product_id, user_id=g.user_id):
        return {"error": "Product not found"}, 404
    return {"message": "Product deleted successfully"}
