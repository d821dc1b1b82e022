# Overview: Flask API routes for sign-in and account management; parses input and returns JSON responses.

"""
Authentication API routes

- Local login (username/password) and Google login (identity-provider token)
  both answer with a locally signed session token
- Account management is role-gated; users are deactivated, never deleted
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import ApiError
from ..services import auth_service
from ..validation import json_body, parse_bool, parse_optional_id


auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.post("/login/local")
def login_local_route():
    """
    Sign in with username and password.

    Unknown usernames, SSO accounts, inactive accounts and wrong passwords
    all answer 401 with the same message.
    """
    try:
        data = json_body()
        username = data.get("username")
        password = data.get("password")
        if not username or not password:
            return jsonify({"error": "Username and password are required"}), 400

        result = auth_service.authenticate_local(str(username).strip(), str(password))
        return jsonify(result), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Local login failed")
        return jsonify({"error": "Login failed"}), 500


@auth_bp.post("/login/google")
def login_google_route():
    try:
        data = json_body()
        token = data.get("token")
        if not token:
            return jsonify({"error": "Google token is required"}), 400

        result = auth_service.authenticate_external(str(token))
        return jsonify(result), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Google login failed")
        return jsonify({"error": "Login failed"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    # Tokens are stateless; the client discards its copy
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.get("/profile")
@require_auth
def profile_route():
    try:
        return jsonify({"user": auth_service.profile(g.auth)}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Get profile failed")
        return jsonify({"error": "Failed to fetch profile"}), 500


@auth_bp.patch("/profile/preferences")
@require_auth
def update_preferences_route():
    try:
        data = json_body()
        user = auth_service.update_preferences(g.auth, data.get("preferences"))
        return jsonify({"message": "Preferences updated successfully", "preferences": user.preferences}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Update preferences failed")
        return jsonify({"error": "Failed to update preferences"}), 500


@auth_bp.post("/users")
@require_auth
@require_role("super_user", "store_manager")
def create_user_route():
    try:
        user = auth_service.create_user(g.auth, json_body())
        return jsonify({"message": "User created successfully", "user": user.to_dict()}), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create user failed")
        return jsonify({"error": "Failed to create user"}), 500


@auth_bp.post("/users/cashier")
@require_auth
@require_role("store_manager")
def create_cashier_route():
    """Store-manager shorthand: always a local cashier in the manager's store."""
    try:
        data = dict(json_body())
        data["role"] = "cashier"
        data["authentication_type"] = "local"
        user = auth_service.create_user(g.auth, data)
        return jsonify({"message": "Cashier created successfully", "user": user.to_dict()}), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create cashier failed")
        return jsonify({"error": "Failed to create cashier"}), 500


@auth_bp.get("/users")
@require_auth
@require_role("super_user", "accounts_incharge", "store_manager")
def list_users_route():
    try:
        include_inactive = request.args.get("include_inactive")
        users = auth_service.list_users(
            g.auth,
            role=request.args.get("role") or None,
            store_id=parse_optional_id(request.args.get("store_id"), "store_id"),
            include_inactive=parse_bool(include_inactive, "include_inactive") if include_inactive else False,
        )
        return jsonify([u.to_dict() for u in users]), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("List users failed")
        return jsonify({"error": "Failed to fetch users"}), 500


@auth_bp.patch("/users/<int:user_id>")
@require_auth
@require_role("super_user")
def update_user_route(user_id: int):
    try:
        user = auth_service.update_user(g.auth, user_id, json_body())
        return jsonify({"message": "User updated successfully", "user": user.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Update user failed")
        return jsonify({"error": "Failed to update user"}), 500


@auth_bp.patch("/users/<int:user_id>/status")
@require_auth
@require_role("super_user", "store_manager")
def set_user_status_route(user_id: int):
    try:
        data = json_body()
        if "is_active" not in data:
            return jsonify({"error": "is_active is required"}), 400
        user = auth_service.set_user_status(g.auth, user_id, parse_bool(data["is_active"], "is_active"))
        state = "activated" if user.is_active else "deactivated"
        return jsonify({"message": f"User {state} successfully", "user": user.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Update user status failed")
        return jsonify({"error": "Failed to update user status"}), 500


@auth_bp.patch("/users/<int:user_id>/password")
@require_auth
@require_role("super_user", "store_manager")
def reset_password_route(user_id: int):
    try:
        data = json_body()
        new_password = data.get("new_password") or data.get("password")
        if not new_password:
            return jsonify({"error": "New password is required"}), 400
        auth_service.reset_password(g.auth, user_id, str(new_password))
        return jsonify({"message": "Password reset successfully"}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Reset password failed")
        return jsonify({"error": "Failed to reset password"}), 500
