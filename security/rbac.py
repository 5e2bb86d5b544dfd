from functools import wraps
from flask import g, jsonify

SUPERADMIN = "superadmin"


def require_roles(*role_names: str):
    """
    Usage: @require_roles("admin")
    Superadmins pass every check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if user.role != SUPERADMIN and user.role not in role_names:
                return jsonify(error="Insufficient permissions"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
