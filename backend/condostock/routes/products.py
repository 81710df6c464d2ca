# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/condostock/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations are open to every resident (self-service checkout)
- Write operations require ADMIN
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import CondoStockError
from ..models import Product
from ..services import products_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from ..decorators import require_auth, require_admin

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "barcode", "price", "min_stock", "image_url"},
    required_on_create={"barcode"},
    aliases={"minStock": "min_stock", "imageUrl": "image_url"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """List all products with their total_stock, ordered by name."""
    try:
        return jsonify({"products": products_service.list_products()}), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<product_id>")
@require_auth
def get_product_route(product_id: str):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": products_service.product_detail(product)}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/barcode/<barcode>")
@require_auth
def find_by_barcode_route(barcode: str):
    """Scanner lookup."""
    try:
        product = products_service.find_by_barcode(barcode)
        return jsonify({"product": products_service.product_detail(product)}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    """
    Create a product, or restock it when the barcode already exists.

    Body: product fields plus optional "stock" (units in the first batch).
    Returns 201 on create, 200 on restock.
    """
    payload = dict(request.get_json(silent=True) or {})
    initial_stock = payload.pop("stock", None)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product, created = products_service.create_or_restock_product(patch=patch, initial_stock=initial_stock)
        return jsonify({"product": product, "created": created}), 201 if created else 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.route("/<product_id>", methods=["PATCH", "PUT"])
@require_auth
@require_admin
def update_product_route(product_id: str):
    """Update registration data. A barcode owned by another product is a 409."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id=product_id, patch=patch)
        return jsonify({"product": updated}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: str):
    """Delete a product with its batches, stocks and sale items."""
    try:
        products_service.delete_product(product_id=product_id)
        return jsonify({"ok": True}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
