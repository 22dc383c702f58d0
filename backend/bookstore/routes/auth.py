# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/bookstore/routes/auth.py
"""
Authentication API routes

- Self-registration creates non-admin customer accounts
- Login returns a bearer token for the Authorization header
- Logout revokes the token
"""

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import SQLAlchemyError

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError
from ..validation import ConflictError
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _start_session(user):
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return {
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
    }


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account and sign it in.

    Body: {username, password, confirm_password?}
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not isinstance(username, str) or not isinstance(password, str):
        return jsonify({"error": "username and password required"}), 400

    confirm = data.get("confirm_password")
    if confirm is not None and confirm != password:
        return jsonify({"error": "Passwords don't match", "field": "confirm_password"}), 400

    try:
        user = auth_service.create_user(username, password)
        body = _start_session(user)
    except PasswordValidationError as e:
        return jsonify({"error": str(e), "field": "password"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "field": "username"}), 409
    except ValueError as e:
        return jsonify({"error": str(e), "field": "username"}), 400
    except SQLAlchemyError:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(body), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        return jsonify({"error": "username and password required"}), 400

    try:
        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for username=%r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401
        body = _start_session(user)
    except SQLAlchemyError:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(body), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token used for this request."""
    session_service.revoke_session(bearer_token(), reason="User logout")
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()})
