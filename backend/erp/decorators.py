# Overview: Role-gating decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ROLE_HEADER = "X-User-Role"
USER_HEADER = "X-User-Name"

ROLE_MANAGER = "manager"
ROLE_EMPLOYEE = "employee"
KNOWN_ROLES = {ROLE_MANAGER, ROLE_EMPLOYEE}


def require_role(*allowed_roles: str):
    """
    Require a known caller role, optionally one of allowed_roles.

    The upstream gateway authenticates the user and forwards the role and
    display name in the X-User-Role / X-User-Name headers. Managers pass every
    role check.

    Sets:
    - g.current_role: "manager" or "employee"
    - g.current_user_name: display name used as created_by on stock changes

    Returns 401 when the role is missing or unknown, 403 when it is not allowed.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            role = (request.headers.get(ROLE_HEADER) or "").strip().lower()
            if role not in KNOWN_ROLES:
                return jsonify({"error": "Authentication required"}), 401

            if allowed_roles and role != ROLE_MANAGER and role not in allowed_roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": ", ".join(allowed_roles),
                }), 403

            g.current_role = role
            g.current_user_name = (request.headers.get(USER_HEADER) or "").strip() or None
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_manager(f):
    """Shortcut for require_role("manager")."""
    return require_role(ROLE_MANAGER)(f)


def current_actor() -> str:
    return getattr(g, "current_user_name", None) or "System"
