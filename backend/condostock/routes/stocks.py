# Overview: Flask API routes for stock batches; parses input and returns JSON responses.

# backend/condostock/routes/stocks.py
"""Stock receiving, adjustment and bulk import. ADMIN only."""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CondoStockError, InvalidRequestError
from ..services import inventory_service
from ..decorators import require_auth, require_admin


stocks_bp = Blueprint("stocks", __name__, url_prefix="/api/stocks")


def _field(data: dict, snake: str, camel: str):
    return data[snake] if snake in data else data.get(camel)


@stocks_bp.post("")
@require_auth
@require_admin
def receive_stock_route():
    """
    Receive a new lot.

    Body: {"product_id", "batch_code", "expiry_date": "YYYY-MM-DD", "quantity"}
    """
    data = request.get_json(silent=True) or {}
    try:
        product_id = _field(data, "product_id", "productId")
        if not product_id:
            raise InvalidRequestError("product_id is required")
        result = inventory_service.receive_stock(
            product_id=product_id,
            batch_code=_field(data, "batch_code", "batchCode"),
            expiry_date=_field(data, "expiry_date", "expiryDate"),
            quantity=data.get("quantity"),
        )
        return jsonify(result), 201
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@stocks_bp.get("")
@require_auth
@require_admin
def list_stocks_route():
    """Query params: product_id (optional)."""
    product_id = request.args.get("product_id")
    return jsonify({"stocks": inventory_service.list_stocks(product_id)}), 200


@stocks_bp.get("/<stock_id>")
@require_auth
@require_admin
def get_stock_route(stock_id: str):
    try:
        stock = inventory_service.get_stock(stock_id)
        return jsonify({"stock": stock.to_dict(include_product=True)}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code


@stocks_bp.route("/<stock_id>", methods=["PATCH", "PUT"])
@require_auth
@require_admin
def update_stock_route(stock_id: str):
    data = request.get_json(silent=True) or {}
    try:
        stock = inventory_service.update_stock(
            stock_id,
            quantity=data.get("quantity"),
            batch_code=_field(data, "batch_code", "batchCode"),
            expiry_date=_field(data, "expiry_date", "expiryDate"),
        )
        return jsonify({"stock": stock}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update stock")
        return jsonify({"error": "Internal server error"}), 500


@stocks_bp.delete("/<stock_id>")
@require_auth
@require_admin
def delete_stock_route(stock_id: str):
    try:
        inventory_service.delete_stock(stock_id)
        return jsonify({"ok": True}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete stock")
        return jsonify({"error": "Internal server error"}), 500


@stocks_bp.post("/import")
@require_auth
@require_admin
def import_stock_route():
    """
    Bulk receive. Body: {"rows": [{barcode, name, price, batch_code, expiry_date, quantity}, ...]}

    All-or-nothing: a bad row rejects the whole import.
    """
    data = request.get_json(silent=True) or {}
    try:
        rows = data.get("rows")
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise InvalidRequestError("rows must be a list of objects")
        summary = inventory_service.import_stock_rows(rows)
        return jsonify(summary), 201
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to import stock")
        return jsonify({"error": "Internal server error"}), 500
