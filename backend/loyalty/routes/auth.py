# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Login issues a session token in the JSON body and in the session cookie;
either may be presented on later requests (cookie or Authorization: Bearer).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.session_service import session_lifetime
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _cookie_name() -> str:
    return current_app.config.get("SESSION_COOKIE_NAME_POINTS", "loyalty_session")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = jsonify({
            "user": user.to_dict(),
            "roles": sorted(auth_service.get_user_role_names(user.id)),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        })
        response.set_cookie(
            _cookie_name(),
            token,
            max_age=int(session_lifetime().total_seconds()),
            httponly=True,
            samesite="Lax",
            secure=not current_app.debug and not current_app.testing,
        )
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token (logout)."""
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        response = jsonify({"message": "Logout successful"})
        response.delete_cookie(_cookie_name())
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user and roles."""
    return jsonify({
        "user": g.current_user.to_dict(),
        "roles": sorted(auth_service.get_user_role_names(g.current_user.id)),
    }), 200
