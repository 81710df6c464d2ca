# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def require_auth(f):
    """
    Require a valid Bearer session token.

    Sets the following Flask g attributes:
    - g.current_user: the authenticated Resident
    - g.session_token: the SessionToken row backing the request
    - g.raw_token: the plaintext token (for logout)

    Returns 401 when the header is missing or the token is invalid,
    expired, revoked, or belongs to a resident who is no longer ACTIVE.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user, g.session_token = context
        g.raw_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require an authenticated ADMIN. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        if not g.current_user.is_admin:
            return jsonify({
                "error": "Permission denied",
                "kind": "FORBIDDEN",
                "details": {"required_role": "ADMIN"},
            }), 403

        return f(*args, **kwargs)

    return decorated_function
