from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g

from app.blitz.models import User


def current_user() -> User | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return None
    return user


def user_has_role(user: User | None, *roles: str) -> bool:
    if not user or not user.is_active:
        return False
    return user.role in roles


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_user() is None:
            abort(401, description="Unauthorized")
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            # Unauthenticated → 401, authenticated with the wrong role → 403
            if user is None:
                abort(401, description="Unauthorized")
            if not user_has_role(user, *roles):
                g.missing_role = ",".join(roles)
                abort(403, description="Forbidden")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
