# Overview: Request authentication decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import auth_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the verified AuthContext (user_id, role).

    SECURITY: Returns 401 if:
    - No Authorization header
    - Token is forged, malformed or expired
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"ok": False, "error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = auth_service.verify_token(token)

        if not context:
            return jsonify({"ok": False, "error": "Invalid or expired token"}), 401

        g.current_user = context
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require an authenticated admin. Use below @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"ok": False, "error": "Authentication required"}), 401

        if not g.current_user.is_admin:
            return jsonify({"ok": False, "error": "Admin access required"}), 403

        return f(*args, **kwargs)

    return decorated_function
