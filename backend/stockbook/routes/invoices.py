# backend/stockbook/routes/invoices.py
"""Invoice API routes. MULTI-TENANT: scoped to g.user_id."""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import invoice_service
from ..services.invoice_service import InvoiceError
from ..services.pagination import parse_pagination
from ..validation import ValidationError, validate_invoice_payload, validate_invoice_status
from ..decorators import require_auth
from stockbook.time_utils import parse_iso_datetime, end_of_day_if_date_only


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _parse_date_args(args):
    date_from_raw = args.get("date_from")
    date_to_raw = args.get("date_to")
    try:
        date_from = parse_iso_datetime(date_from_raw)
        date_to = end_of_day_if_date_only(date_to_raw, parse_iso_datetime(date_to_raw))
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 dates")
    return date_from, date_to


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    """
    Query params:
    - customer: int (optional)
    - status: PENDING | PAID | CANCELLED | OVERDUE (optional)
    - date_from / date_to: ISO-8601, inclusive (optional)
    - page / limit: pagination
    """
    try:
        page, limit = parse_pagination(request.args)
        date_from, date_to = _parse_date_args(request.args)
        status = request.args.get("status")
        if status:
            status = validate_invoice_status(status)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(invoice_service.list_invoices(
        user_id=g.user_id,
        customer_id=request.args.get("customer", type=int),
        status=status,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    ))


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    invoice = invoice_service.get_invoice(invoice_id=invoice_id, user_id=g.user_id)
    if invoice is None:
        return jsonify({"error": "Invoice not found"}), 404
    return jsonify({"invoice": invoice.to_dict()})


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    """
    Create invoice; decrements stock and writes one OUT movement per line.

    All-or-nothing: a missing customer/product or insufficient stock returns
    400 and leaves stock, invoices and movements untouched.
    """
    try:
        data = validate_invoice_payload(request.get_json(silent=True) or {})
        invoice = invoice_service.create_invoice(user_id=g.user_id, data=data)
        return jsonify({
            "message": "Invoice created successfully",
            "invoice": invoice.to_dict(),
        }), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InvoiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:invoice_id>/status")
@require_auth
def update_invoice_status_route(invoice_id: int):
    """Status change only; stock is not touched."""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.update_invoice_status(
            invoice_id=invoice_id,
            user_id=g.user_id,
            status=data.get("status"),
        )
        if invoice is None:
            return jsonify({"error": "Invoice not found"}), 404
        return jsonify({
            "message": "Invoice status updated successfully",
            "invoice": invoice.to_dict(),
        })

    except InvoiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
def delete_invoice_route(invoice_id: int):
    """Delete a non-PAID invoice and restore its stock."""
    try:
        deleted = invoice_service.delete_invoice(invoice_id=invoice_id, user_id=g.user_id)
        if not deleted:
            return jsonify({"error": "Invoice not found"}), 404
        return jsonify({"message": "Invoice deleted successfully"})

    except InvoiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500
