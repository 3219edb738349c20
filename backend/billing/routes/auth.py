# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login  -> bearer token
- POST /api/auth/logout -> revoke the presented token
- GET  /api/auth/me     -> current user and business

Self-registration is not offered. Users are created via the CLI
(flask users create).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import bearer_token, require_auth
from ..errors import BillingError, error_response
from ..services import auth_service
from ..services import session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included as "Authorization: Bearer <token>" on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required", "code": "invalid_argument"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials", "code": "unauthenticated"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "business_id": session.business_id,
            "message": "Login successful"
        }), 200

    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(bearer_token())
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "business": user.business.to_dict() if user.business else None,
        "business_id": g.business_id,
    }), 200
