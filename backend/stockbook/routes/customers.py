# backend/stockbook/routes/customers.py
"""Customer routes. MULTI-TENANT: scoped to g.user_id."""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..models import Customer
from ..services import customer_service
from ..services.customer_service import CustomerInUseError
from ..services.pagination import parse_pagination
from ..validation import (
    CUSTOMER_POLICY,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    """
    Query params:
    - search: str (optional) - matches name, email or phone
    - page / limit: pagination
    """
    try:
        page, limit = parse_pagination(request.args)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return customer_service.list_customers(
        user_id=g.user_id,
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    customer = customer_service.get_customer_detail(customer_id=customer_id, user_id=g.user_id)
    if customer is None:
        return {"error": "Customer not found"}, 404
    return {"customer": customer}


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        created = customer_service.create_customer(user_id=g.user_id, patch=patch)
    except (ValidationError, ConflictError) as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create customer")
        return {"error": "Internal server error"}, 500

    return {"message": "Customer created successfully", "customer": created}, 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        updated = customer_service.update_customer(
            customer_id=customer_id, user_id=g.user_id, patch=patch,
        )
    except (ValidationError, ConflictError) as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update customer")
        return {"error": "Internal server error"}, 500

    if updated is None:
        return {"error": "Customer not found"}, 404
    return {"message": "Customer updated successfully", "customer": updated}


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    """Soft delete; 400 with invoice_count while invoices reference the customer."""
    try:
        deleted = customer_service.delete_customer(customer_id=customer_id, user_id=g.user_id)
    except CustomerInUseError as e:
        return {"error": str(e), "invoice_count": e.invoice_count}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete customer")
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Customer not found"}, 404
    return {"message": "Customer deleted successfully"}
