# backend/stockbook/routes/analytics.py
"""
Analytics API.

Query params (all optional):
- date_from / date_to: ISO-8601, inclusive
- category: category id or "all"
- customer: customer id or "all"
"""
from flask import Blueprint, request, g, current_app

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_auth

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("")
@require_auth
def analytics_route():
    try:
        data = reporting_service.analytics(
            user_id=g.user_id,
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            category=request.args.get("category"),
            customer=request.args.get("customer"),
        )
    except ReportError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to build analytics")
        return {"error": "Internal server error"}, 500

    return {"analytics": data}
