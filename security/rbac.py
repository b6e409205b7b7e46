from functools import wraps
from flask import g, jsonify

# may accept, decline, reschedule or cancel any booking
PRIVILEGED_ROLES = ("MODERATOR", "ADMIN")

# passes every role check
ROOT_ROLE = "ADMIN"


def role_names(subject) -> set:
    """Role names of a user, or of a plain iterable of names/Role rows."""
    if subject is None:
        return set()
    roles = getattr(subject, "roles", subject)
    if isinstance(roles, str):
        roles = [roles]
    return {r if isinstance(r, str) else r.name for r in roles}


def has_any_role(subject, wanted) -> bool:
    names = role_names(subject)
    return ROOT_ROLE in names or bool(names.intersection(wanted))


def require_roles(*wanted: str):
    """
    Usage: @require_roles("MODERATOR", "ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if not has_any_role(user, wanted):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
