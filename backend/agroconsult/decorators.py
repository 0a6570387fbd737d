# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return getattr(g, "identity", None) is not None


def require_auth(f):
    """
    Require a bearer token and establish the caller identity.

    Sets g.identity to the CallerIdentity resolved by session_service.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - Principal deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        identity = session_service.validate_session(token)
        if identity is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.identity = identity
        return f(*args, **kwargs)

    return decorated_function


def require_roles(*roles):
    """Require the caller's role to be one of roles (admin, analyst, client, company_user)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.identity.role not in roles:
                return jsonify({
                    "success": False,
                    "error": "FORBIDDEN",
                    "message": f"Requires one of roles: {', '.join(roles)}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
