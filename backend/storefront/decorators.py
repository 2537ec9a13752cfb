# Overview: Request decorators for API routes (caller identity and staff gate).

from functools import wraps
from flask import request, jsonify, g

from .services import identity_service


def _is_authenticated() -> bool:
    return getattr(g, 'identity', None) is not None


def current_identity():
    return getattr(g, 'identity', None)


def require_auth(f):
    """
    Require a valid identity token.

    Sets g.identity (identity_service.Identity) for the route.

    Returns 401 if:
    - No Authorization header
    - Token signature invalid or expired
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        identity = identity_service.resolve_token(token)

        if identity is None:
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        g.identity = identity
        return f(*args, **kwargs)

    return decorated_function


def require_staff(f):
    """Require the authenticated caller to be staff. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"success": False, "error": "Authentication required"}), 401
        if not g.identity.is_staff:
            return jsonify({"success": False, "error": "Staff access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
