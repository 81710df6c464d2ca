# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/condostock/routes/auth.py
"""
Authentication API routes

Residents log in with CPF + password and receive an opaque session token
for the Authorization: Bearer header.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_payload(resident) -> dict:
    return {
        "id": resident.id,
        "name": resident.name,
        "cpf": resident.cpf,
        "role": resident.role,
        "unit_role": resident.unit_role,
        "status": resident.status,
        "apartment": resident.apartment,
        "block": resident.block,
        "is_first_login": resident.is_first_login,
    }


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a resident and create a session token.

    Only ACTIVE residents can log in; PENDING and REJECTED get the same 401
    as a wrong password.
    """
    try:
        data = request.get_json(silent=True) or {}
        cpf = data.get("cpf")
        password = data.get("password")

        if not cpf or not password:
            return jsonify({"error": "cpf and password required"}), 400

        resident = auth_service.authenticate(str(cpf), str(password))
        if not resident:
            current_app.logger.warning("Failed login for cpf ending %s", str(cpf)[-3:])
            return jsonify({"error": "Invalid credentials"}), 401

        _, token = session_service.create_session(
            resident.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({"token": token, "user": _user_payload(resident)}), 200

    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.raw_token, reason="User logout")
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": _user_payload(g.current_user)}), 200
