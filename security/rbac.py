from functools import wraps
from flask import current_app, g, jsonify

from security.errors import AuthorizationError

ADMIN = "ADMIN"

def has_role(user, role_name: str) -> bool:
    return user is not None and user.has_role(role_name)

def require_role(actor, role_name: str = ADMIN):
    """
    Single capability check for every override entry point. Raises
    AuthorizationError before anything is mutated; the refusal is logged
    locally and never written to the audit trail.
    """
    if not has_role(actor, role_name):
        current_app.logger.warning(
            "Authorization refused: actor=%s lacks role %s",
            getattr(actor, "id", None),
            role_name,
        )
        raise AuthorizationError("Forbidden", role=role_name)
    return actor

def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            for name in role_names:
                if has_role(user, name):
                    return fn(*args, **kwargs)

            # raise through the central check so the refusal is logged once
            require_role(user, role_names[0])
        return wrapper
    return decorator
