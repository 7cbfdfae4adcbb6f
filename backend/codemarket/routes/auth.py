# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Login returns an opaque token once; clients send it back as
"Authorization: Bearer <token>". Logout revokes the server-side session.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import bearer_token, json_body, load_identity
from ..errors import CodeMarketError, StorageFailure, error_response
from ..services import auth_service, session_service
from ..services.access_service import require_authenticated


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Self-registration. Always creates a plain user; admins are promoted
    through /api/admin/make-admin or the CLI.
    """
    data = json_body()
    try:
        user = auth_service.register(
            data.get("name"),
            data.get("email"),
            data.get("password"),
            data.get("password_confirm"),
        )
        return jsonify({"success": True, "user": user.to_dict()}), 201
    except CodeMarketError as e:
        return error_response(e, "register")
    except Exception:
        return error_response(StorageFailure(), "register")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    """
    data = json_body()
    try:
        user = auth_service.authenticate(data.get("email"), data.get("password"))
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "success": True,
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        })
    except CodeMarketError as e:
        return error_response(e, "login")
    except Exception:
        return error_response(StorageFailure(), "login")


@auth_bp.post("/logout")
def logout_route():
    token = bearer_token()
    if token:
        session_service.revoke_session(token)
    return jsonify({"success": True})


@auth_bp.get("/me")
@load_identity
def me_route():
    try:
        identity = require_authenticated(g.identity)
        return jsonify({"user": auth_service.get_user(identity.user_id).to_dict()})
    except CodeMarketError as e:
        return error_response(e, "me")


@auth_bp.post("/profile")
@load_identity
def profile_route():
    data = json_body()
    try:
        user = auth_service.update_profile(g.identity, data.get("name"))
        return jsonify({"success": True, "user": user.to_dict()})
    except CodeMarketError as e:
        return error_response(e, "update profile")
