# backend/stockbook/routes/reports.py
"""
Report exports (CSV and Excel downloads).

PDF rendering happens in the frontend; these endpoints serve the report
tables as CSV for scripts and as .xlsx workbooks for spreadsheets.
"""
from flask import Blueprint, Response, request, g

from ..services import export_service
from ..validation import ValidationError, validate_invoice_status
from ..decorators import require_auth
from stockbook.time_utils import parse_iso_datetime, end_of_day_if_date_only, utcnow

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _download(body, name: str, ext: str, mimetype: str) -> Response:
    filename = f"{name}-{utcnow().strftime('%Y%m%d')}.{ext}"
    return Response(
        body,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _csv_response(body: str, name: str) -> Response:
    return _download(body, name, "csv", "text/csv")


def _xlsx_response(body: bytes, name: str) -> Response:
    return _download(body, name, "xlsx", export_service.XLSX_MIMETYPE)


def _optional_id(raw, field: str) -> int | None:
    if raw is None or raw == "" or raw == "all":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{field} must be an id or 'all'")


def _sales_filters(args) -> dict:
    """date_from, date_to, customer and status, like the analytics/invoice filters."""
    date_to_raw = args.get("date_to")
    status = args.get("status")
    return {
        "date_from": parse_iso_datetime(args.get("date_from")),
        "date_to": end_of_day_if_date_only(date_to_raw, parse_iso_datetime(date_to_raw)),
        "customer_id": _optional_id(args.get("customer"), "customer"),
        "status": validate_invoice_status(status) if status else None,
    }


@reports_bp.get("/inventory.csv")
@require_auth
def inventory_report():
    return _csv_response(export_service.inventory_csv(user_id=g.user_id), "inventory")


@reports_bp.get("/inventory.xlsx")
@require_auth
def inventory_workbook():
    return _xlsx_response(export_service.inventory_xlsx(user_id=g.user_id), "inventory")


@reports_bp.get("/sales.csv")
@require_auth
def sales_report():
    try:
        filters = _sales_filters(request.args)
    except ValueError as e:
        return {"error": str(e)}, 400
    return _csv_response(export_service.sales_csv(user_id=g.user_id, **filters), "sales")


@reports_bp.get("/sales.xlsx")
@require_auth
def sales_workbook():
    try:
        filters = _sales_filters(request.args)
    except ValueError as e:
        return {"error": str(e)}, 400
    return _xlsx_response(export_service.sales_xlsx(user_id=g.user_id, **filters), "sales")


@reports_bp.get("/stock-movements.csv")
@require_auth
def stock_movements_report():
    body = export_service.stock_movements_csv(
        user_id=g.user_id,
        product_id=request.args.get("product", type=int),
    )
    return _csv_response(body, "stock-movements")
