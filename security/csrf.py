import hmac
import secrets
from flask import request, jsonify, current_app, g

CSRF_HEADER = "X-CSRF-Token"

# endpoints that establish the session in the first place
CSRF_EXEMPT_PATHS = {"/auth/login", "/auth/register", "/health"}

STATE_CHANGING_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def _cookie_name():
    return current_app.config.get("CSRF_COOKIE_NAME", "quadralink_csrf")


def issue_csrf_token(resp) -> str:
    """Sets a fresh double-submit cookie on ``resp`` and returns its value."""
    token = secrets.token_urlsafe(32)
    resp.set_cookie(
        _cookie_name(),
        token,
        httponly=False,  # read by the frontend and echoed in X-CSRF-Token
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return token


def csrf_protect():
    if request.method not in STATE_CHANGING_METHODS or request.path in CSRF_EXEMPT_PATHS:
        return None
    # cookie sessions only; anonymous requests are rejected by auth anyway
    if getattr(g, "user", None) is None:
        return None

    cookie_token = request.cookies.get(_cookie_name()) or ""
    header_token = request.headers.get(CSRF_HEADER) or ""
    if not cookie_token or not hmac.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed"), 403
    return None
