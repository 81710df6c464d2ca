# Overview: Flask API routes for residents and their tab accounts; parses input and returns JSON responses.

# backend/condostock/routes/residents.py
"""
Resident management routes.

- /me/*: the caller's own unit (any authenticated resident)
- registration, approval, accounts: ADMIN
- profile reads/updates: self, own unit, or ADMIN
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CondoStockError
from ..services import residents_service
from ..decorators import require_auth, require_admin


residents_bp = Blueprint("residents", __name__, url_prefix="/api/residents")


@residents_bp.post("")
@require_auth
@require_admin
def create_resident_route():
    """Register a resident. Initial password: first 4 digits of the CPF."""
    try:
        resident = residents_service.create_resident(request.get_json(silent=True) or {})
        return jsonify({"resident": resident.to_dict(include_account=True)}), 201
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create resident")
        return jsonify({"error": "Internal server error"}), 500


@residents_bp.get("")
@require_auth
@require_admin
def list_residents_route():
    residents = residents_service.list_residents()
    return jsonify({
        "residents": [r.to_dict(include_account=True, include_dependents=True) for r in residents]
    }), 200


@residents_bp.get("/me/unit")
@require_auth
def my_unit_route():
    """Caller's household, owner first."""
    try:
        members = residents_service.get_unit(g.current_user)
        return jsonify({"residents": [r.to_dict(include_account=True) for r in members]}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code


@residents_bp.post("/me/dependent")
@require_auth
def request_dependent_route():
    """Register a family member; starts PENDING until an admin approves."""
    try:
        resident = residents_service.request_dependent(g.current_user, request.get_json(silent=True) or {})
        return jsonify({"resident": resident.to_dict(include_account=True)}), 201
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to request dependent")
        return jsonify({"error": "Internal server error"}), 500


@residents_bp.get("/pending")
@require_auth
@require_admin
def pending_route():
    return jsonify({"residents": residents_service.list_pending()}), 200


@residents_bp.patch("/<resident_id>/status")
@require_auth
@require_admin
def update_status_route(resident_id: str):
    data = request.get_json(silent=True) or {}
    try:
        resident = residents_service.update_status(resident_id, data.get("status"))
        return jsonify({"resident": resident.to_dict()}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update resident status")
        return jsonify({"error": "Internal server error"}), 500


@residents_bp.get("/<resident_id>")
@require_auth
def get_resident_route(resident_id: str):
    try:
        resident = residents_service.get_resident(resident_id)
        residents_service.ensure_can_view(g.current_user, resident)
        data = resident.to_dict(include_account=True, include_dependents=True)
        data["owner"] = resident.owner.to_dict() if resident.owner else None
        return jsonify({"resident": data}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code


@residents_bp.get("/<resident_id>/history")
@require_auth
def history_route(resident_id: str):
    """Sales charged to the resident, newest first."""
    try:
        resident = residents_service.get_resident(resident_id)
        residents_service.ensure_can_view(g.current_user, resident)
        sales = residents_service.get_history(resident_id)
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code


@residents_bp.route("/<resident_id>", methods=["PATCH", "PUT"])
@require_auth
def update_resident_route(resident_id: str):
    try:
        resident = residents_service.update_resident(
            g.current_user, resident_id, request.get_json(silent=True) or {}
        )
        return jsonify({"resident": resident.to_dict(include_account=True)}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update resident")
        return jsonify({"error": "Internal server error"}), 500


@residents_bp.post("/<resident_id>/change-password")
@require_auth
def change_password_route(resident_id: str):
    """Body: {"password": "..."}. Other sessions of the resident are revoked."""
    data = request.get_json(silent=True) or {}
    try:
        resident = residents_service.change_password(
            g.current_user,
            resident_id,
            data.get("password"),
            current_session_id=g.session_token.id,
        )
        return jsonify({"resident": resident.to_dict()}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@residents_bp.patch("/<resident_id>/account")
@require_auth
@require_admin
def update_account_route(resident_id: str):
    """Body: {"credit_limit"?, "status"?: "ACTIVE" | "BLOCKED"}"""
    try:
        account = residents_service.update_account(resident_id, request.get_json(silent=True) or {})
        return jsonify({"account": account.to_dict()}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update account")
        return jsonify({"error": "Internal server error"}), 500


@residents_bp.post("/<resident_id>/account/payments")
@require_auth
@require_admin
def account_payment_route(resident_id: str):
    """Body: {"amount": "25.00"}; settles part of the tab."""
    data = request.get_json(silent=True) or {}
    try:
        account = residents_service.pay_account(resident_id, data.get("amount"))
        return jsonify({"account": account.to_dict()}), 201
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record account payment")
        return jsonify({"error": "Internal server error"}), 500


@residents_bp.delete("/<resident_id>")
@require_auth
def delete_resident_route(resident_id: str):
    """ADMIN, or an owner removing a member of their own unit."""
    try:
        residents_service.delete_resident(g.current_user, resident_id)
        return jsonify({"ok": True}), 200
    except CondoStockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete resident")
        return jsonify({"error": "Internal server error"}), 500
