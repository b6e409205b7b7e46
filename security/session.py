import hashlib
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.auth_session import AuthSession


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _client_ip():
    return request.headers.get("X-Forwarded-For", request.remote_addr)


def create_session(user_id: int) -> str:
    """
    Stores a new session and returns the RAW token for the cookie.
    """
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60)
    now = datetime.utcnow()

    db.session.add(AuthSession(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        last_seen_at=now,
        expires_at=now + timedelta(seconds=lifetime),
        client_ip=_client_ip(),
    ))
    db.session.commit()
    return raw_token


def get_session_from_request():
    raw_token = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    if not raw_token:
        return None

    sess = AuthSession.query.filter_by(token_hash=_hash_token(raw_token), revoked_at=None).first()
    if not sess:
        return None

    now = datetime.utcnow()
    if sess.expires_at <= now:
        return None

    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 20 * 60)
    last_seen = sess.last_seen_at or sess.created_at
    if last_seen + timedelta(seconds=idle_seconds) <= now:
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    sess = AuthSession.query.filter_by(token_hash=_hash_token(raw_token), revoked_at=None).first()
    if not sess:
        return False
    sess.revoked_at = datetime.utcnow()
    db.session.commit()
    return True


def revoke_all_sessions(user_id: int) -> int:
    now = datetime.utcnow()
    sessions = AuthSession.query.filter_by(user_id=user_id, revoked_at=None).all()
    for s in sessions:
        s.revoked_at = now
    db.session.commit()
    return len(sessions)
