# Overview: Bearer session tokens for customers and admins; issue, check, revoke, purge.

"""
Session Tokens

- The client holds a 64-char hex token; only its SHA-256 digest is stored.
- A session dies after SESSION_TTL_HOURS from login, or after
  SESSION_IDLE_MINUTES without a request, whichever comes first.
- Logout and idle expiry mark the row revoked; rows are purged later by
  `flask system cleanup-sessions`.
"""

import hashlib
import logging
import secrets
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import SessionToken, User
from bookstore.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)
DEFAULT_IDLE = timedelta(hours=2)
PURGE_AFTER = timedelta(days=30)


def _ttl() -> timedelta:
    if has_app_context() and current_app.config.get("SESSION_TTL_HOURS"):
        return timedelta(hours=current_app.config["SESSION_TTL_HOURS"])
    return DEFAULT_TTL


def _idle_limit() -> timedelta:
    if has_app_context() and current_app.config.get("SESSION_IDLE_MINUTES"):
        return timedelta(minutes=current_app.config["SESSION_IDLE_MINUTES"])
    return DEFAULT_IDLE


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _live_row(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for a user.

    Returns (row, plaintext_token). The plaintext is never persisted.
    """
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = generate_token()
    now = utcnow()
    row = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _ttl(),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def _revoke(row: SessionToken, reason: str) -> None:
    row.is_revoked = True
    row.revoked_at = utcnow()
    row.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its user, or None.

    Touches last_used_at on success. Idle sessions and sessions of
    deactivated users are revoked on the way out.
    """
    row = _live_row(token)
    if row is None:
        return None

    now = utcnow()
    if row.expires_at < now:
        return None
    if now - row.last_used_at > _idle_limit():
        _revoke(row, "Idle timeout")
        return None

    user = row.user
    if user is None or not user.is_active:
        _revoke(row, "User account deactivated")
        return None

    row.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    row = _live_row(token)
    if row is None:
        return False
    _revoke(row, reason)
    return True


def cleanup_expired_sessions() -> int:
    """Delete expired or revoked sessions created more than 30 days ago."""
    now = utcnow()
    deleted = (
        db.session.query(SessionToken)
        .filter(
            db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
            SessionToken.created_at < now - PURGE_AFTER,
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    if deleted:
        logger.info("Purged %s stale session(s)", deleted)
    return deleted
