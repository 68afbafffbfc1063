from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.docflow.models import User

ROLE_OPERATOR = "Operator"
ROLE_LINE_INCHARGE = "Line Incharge"
ROLE_SUPERVISOR = "Supervisor"
ROLE_ADMIN = "Admin"
ROLE_AUDITOR = "Auditor"
ROLE_SYSTEM = "System"

ROLES = (ROLE_OPERATOR, ROLE_LINE_INCHARGE, ROLE_SUPERVISOR, ROLE_ADMIN, ROLE_AUDITOR, ROLE_SYSTEM)


def user_has_role(user: User | None, *roles: str) -> bool:
    if not user or not user.is_active:
        return False
    return user.role in roles


def can_access_department(user: User, department: str) -> bool:
    """Admins see every department; everyone else only their own."""
    return user.role == ROLE_ADMIN or user.department == department


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return jsonify({"success": False, "message": "User not authenticated"}), 401
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated → 401
            if not user or not user.is_active:
                return jsonify({"success": False, "message": "User not authenticated"}), 401
            # Authenticated but unauthorized → 403
            if not user_has_role(user, *roles):
                return (
                    jsonify(
                        {
                            "success": False,
                            "message": f"User role '{user.role}' is not authorized to access this resource",
                        }
                    ),
                    403,
                )
            return fn(*args, **kwargs)

        return wrapped

    return decorator
