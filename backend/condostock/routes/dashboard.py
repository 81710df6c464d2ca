# Overview: Flask API route for dashboard metrics.

from flask import Blueprint, jsonify, current_app

from ..services import dashboard_service
from ..decorators import require_auth, require_admin


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
@require_admin
def metrics_route():
    try:
        return jsonify(dashboard_service.get_metrics()), 200
    except Exception:
        current_app.logger.exception("Failed to compute dashboard metrics")
        return jsonify({"error": "Internal server error"}), 500
