# workledger/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask import abort
from flask_login import current_user, login_required

# Roles allowed to cancel orders, sales orders and payments.
MANAGER_ROLES = ("owner", "admin")


def normalize_role(role: str | None) -> str:
    return (role or "").strip().lower().replace("-", "_")


def role_required(*allowed_roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("owner", "admin")
        def view(): ...
    Anonymous users get 401 from Flask-Login, other roles 403.
    """
    allowed = {normalize_role(r) for r in allowed_roles}

    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if normalize_role(getattr(current_user, "role", None)) not in allowed:
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


manager_required = role_required(*MANAGER_ROLES)
