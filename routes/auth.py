from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User
from security.csrf import issue_csrf_token
from security.password import hash_password, verify_password
from security.rbac import role_names
from security.session import create_session, revoke_session, revoke_all_sessions
from utils.audit import log_event
from utils.auth_context import login_required
from utils.institutions import email_matches, find_institution
from utils.seed import grant_role


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _clean(value, max_len):
    if value is None:
        return None
    if not isinstance(value, str) or len(value.strip()) > max_len:
        raise ValueError
    return value.strip() or None


def _user_payload(user: User) -> dict:
    profile = user.counsellor_profile
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "pseudonym": user.pseudonym,
        "institution_id": user.institution_id,
        "roles": sorted(role_names(user)),
        "counsellor_id": profile.id if profile else None,
    }


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400

    institution = find_institution(data.get("institution"))
    if institution is None:
        return jsonify(error="Invalid institution"), 400
    if not email_matches(institution, email):
        return jsonify(error="Email does not match institution format"), 400

    min_len = current_app.config.get("PASSWORD_MIN_LEN", 8)
    if not isinstance(password, str) or len(password) < min_len:
        return jsonify(error=f"Password must be at least {min_len} characters"), 400

    try:
        full_name = _clean(data.get("full_name"), 120)
        pseudonym = _clean(data.get("pseudonym"), 60)
    except ValueError:
        return jsonify(error="Invalid full_name or pseudonym"), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        pseudonym=pseudonym,
        institution_id=institution.id,
    )
    db.session.add(user)
    db.session.flush()
    grant_role(user, "STUDENT")
    db.session.commit()

    log_event("REGISTER_SUCCESS", user_id=user.id, entity="user", entity_id=user.id)
    return jsonify(message="Account created successfully", user_id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    # Rotate: one live session per user
    revoked_count = revoke_all_sessions(user.id)
    raw_token = create_session(user.id)

    resp = jsonify(message="Login OK", user=_user_payload(user))
    resp.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_user_payload(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config["AUTH_COOKIE_NAME"]
    revoke_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200
