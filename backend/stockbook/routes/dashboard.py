# backend/stockbook/routes/dashboard.py
from flask import Blueprint, g, current_app

from ..services import reporting_service
from ..decorators import require_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    try:
        return {"stats": reporting_service.dashboard_stats(user_id=g.user_id)}
    except Exception:
        current_app.logger.exception("Failed to build dashboard stats")
        return {"error": "Internal server error"}, 500
