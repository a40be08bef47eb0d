# Overview: Session tokens for the point API; issue, validate and revoke.

"""
Session tokens.

The plaintext token is handed to the client once (login response body and
session cookie); only its SHA-256 digest is stored. A session ends at the
first of:
- SESSION_LIFETIME_HOURS after login
- SESSION_IDLE_MINUTES without an authenticated request
- logout
- deactivation of the user
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from loyalty.time_utils import utcnow


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def session_lifetime() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_LIFETIME_HOURS", 24))


def session_idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", 120))


def hash_token(token: str) -> str:
    # Tokens carry 256 bits of entropy, so a fast digest is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Open a session for an active user. Returns (row, plaintext_token)."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise ValueError("User not found or inactive")

    token = secrets.token_hex(32)
    now = utcnow()
    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + session_lifetime(),
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def _find_open_session(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()


def _close(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a presented token to its user, or None.

    Idle sessions and sessions of deactivated users are revoked on sight;
    a valid call refreshes last_used_at.
    """
    session = _find_open_session(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > session_idle_timeout():
        _close(session, "Idle timeout")
        return None

    user = session.user
    if user is None or not user.is_active:
        _close(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke an open session. False when the token matches nothing open."""
    session = _find_open_session(token)
    if session is None:
        return False
    _close(session, reason)
    return True
