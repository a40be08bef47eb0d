# Overview: Request authentication decorators for API routes.

import hmac
from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service, auth_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _matches_cron_secret(token: str | None) -> bool:
    secret = current_app.config.get("CRON_SECRET")
    if not secret or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def _resolve_session(bearer: str | None):
    """
    Session from the session cookie, else from a Bearer session token.

    A bearer value equal to the cron secret is never looked up as a session.
    """
    cookie_name = current_app.config.get("SESSION_COOKIE_NAME_POINTS", "loyalty_session")
    token = request.cookies.get(cookie_name)
    if not token and bearer and not _matches_cron_secret(bearer):
        token = bearer
    if not token:
        return None
    context = session_service.validate_session(token)
    if context:
        g.session_token = token
    return context


def _set_session_context(context) -> None:
    g.current_user = context.user
    g.session_context = context


def require_auth(f):
    """
    Require an authenticated session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if no session token is presented, or if it is
    invalid, expired, revoked, or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = _resolve_session(_bearer_token())
        if not context:
            return jsonify({"error": "Authentication required"}), 401

        _set_session_context(context)
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to hold the admin role. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'current_user'):
            return jsonify({"error": "Authentication required"}), 401
        if not auth_service.is_admin(g.current_user.id):
            return jsonify({"error": "Forbidden"}), 403
        return f(*args, **kwargs)
    return decorated_function


def require_admin_or_cron_secret(f):
    """
    Gate for unattended batch triggers.

    Accepts either:
    - a valid session whose user holds the admin role, or
    - Authorization: Bearer <CRON_SECRET> (constant-time comparison).

    Returns 401 when neither credential is valid, and 403 when a valid
    session is present without the admin role, even if a cron token was
    also supplied.

    Sets g.trigger_source to "admin" or "cron".
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        bearer = _bearer_token()
        context = _resolve_session(bearer)
        cron_authorized = _matches_cron_secret(bearer)

        if not context and not cron_authorized:
            return jsonify({"error": "Authentication required"}), 401

        if context:
            if not auth_service.is_admin(context.user.id):
                return jsonify({"error": "Forbidden"}), 403
            _set_session_context(context)
            g.trigger_source = "admin"
        else:
            g.trigger_source = "cron"

        return f(*args, **kwargs)

    return decorated_function
