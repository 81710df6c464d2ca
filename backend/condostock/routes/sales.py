# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/condostock/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CondoStockError, PermissionDeniedError
from ..services import sales_service, residents_service
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Ring up a sale.

    Body: {"items": [{"product_id", "quantity"}], "payment_type", "resident_id"?}
    A RESIDENT may only charge FIADO to their own unit.
    """
    try:
        sale_request = sales_service.parse_sale_request(request.get_json(silent=True))
        if sale_request.is_fiado and sale_request.resident_id:
            residents_service.ensure_can_charge(g.current_user, sale_request.resident_id)

        sale = sales_service.create_sale(sale_request, g.current_user)
        return jsonify({"sale": sale.to_dict(include_resident=True)}), 201

    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """Admins see every sale; residents see the sales charged to or rung up by their unit."""
    user = g.current_user
    resident_ids = None if user.is_admin else residents_service.household_ids(user)
    sales = sales_service.list_sales(resident_ids)
    return jsonify({"sales": [s.to_dict(include_resident=True) for s in sales]}), 200


@sales_bp.get("/<sale_id>")
@require_auth
def get_sale_route(sale_id: str):
    try:
        sale = sales_service.get_sale(sale_id)
        user = g.current_user
        if not user.is_admin and not sales_service.belongs_to(sale, residents_service.household_ids(user)):
            raise PermissionDeniedError("You can only view sales of your own unit")
        return jsonify({"sale": sale.to_dict(include_resident=True)}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
