import hashlib
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.session import Session


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "booking_session")


def create_session(provider_id: str) -> str:
    """
    Opens a server-side session for a provider and returns the raw token for the cookie.
    Only its hash is persisted.
    """
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)

    db.session.add(Session(
        provider_id=provider_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
        ip=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    ))
    db.session.commit()
    return raw_token


def _is_expired(sess: Session, now: datetime) -> bool:
    if sess.expires_at <= now:
        return True
    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)
    last_seen = sess.last_seen_at or sess.created_at
    return last_seen + timedelta(seconds=idle_seconds) <= now


def get_session_from_request():
    raw_token = request.cookies.get(_cookie_name())
    if not raw_token:
        return None

    sess = Session.query.filter_by(token_hash=_hash_token(raw_token), revoked=False).first()
    now = datetime.utcnow()
    if not sess or _is_expired(sess, now):
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    sess = Session.query.filter_by(token_hash=_hash_token(raw_token)).first()
    if not sess:
        return False
    sess.revoked = True
    db.session.commit()
    return True


def revoke_all_sessions(provider_id: str) -> int:
    count = (
        Session.query
        .filter_by(provider_id=provider_id, revoked=False)
        .update({"revoked": True}, synchronize_session=False)
    )
    db.session.commit()
    return count
