# Overview: Flask API routes for login, logout and the current user.

# backend/branchpos/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login   -> bearer token + user
- POST /api/auth/logout  -> revokes the presented token
- GET  /api/auth/me      -> current user with branch
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..validation import require_fields
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_payload(user) -> dict:
    data = user.to_dict()
    data["branch"] = {"id": user.branch.id, "name": user.branch.name} if user.branch else None
    return data


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email and password and create a session token.

    The token must be sent as "Authorization: Bearer <token>".
    """
    data = require_fields(request.get_json(silent=True), "email", "password")

    user = auth_service.authenticate(data["email"], data["password"])
    session, token = session_service.create_session(user.id)

    current_app.logger.info("User %s logged in", user.id)
    return jsonify({
        "success": True,
        "token": token,
        "expires_at": session.expires_at.isoformat() + "Z",
        "user": _user_payload(user),
    })


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token)
    return jsonify({"success": True, "data": {}})


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "data": _user_payload(g.current_user)})
