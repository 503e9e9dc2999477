# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration and reset
- Login throttling to prevent brute-force attacks
- Account lockout after repeated failed attempts
- Session tokens returned in the body and as an HttpOnly cookie
- Password reset never reveals whether an email is registered
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import auth_service
from ..services import session_service
from ..services import login_throttle_service
from ..services import password_reset_service
from ..services.auth_service import PasswordValidationError
from ..services.session_service import SESSION_ABSOLUTE_TIMEOUT
from ..validation import ValidationError
from ..decorators import require_auth, SESSION_COOKIE


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Client self-registration.

    Staff accounts are created by admins (POST /api/admin/users) or the CLI.
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return jsonify({"error": "Email and password are required"}), 400

    try:
        user = auth_service.register_client(data)
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Registration successful", "user": user.to_dict()}), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success. The token is accepted
    from the Authorization header or the session_token cookie.

    SECURITY:
    - Checks for account lockout before attempting authentication
    - Records failed attempts for throttling
    - Records successful logins for audit trail
    """
    try:
        data = request.get_json(silent=True) or {}
        email = (data.get("email") or "").strip().lower()
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "Email and password are required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(email)
        if is_locked:
            minutes_remaining = (seconds_remaining // 60) + 1 if seconds_remaining else 15
            return jsonify({
                "error": "Account temporarily locked due to too many failed login attempts",
                "locked": True,
                "retry_after_seconds": seconds_remaining,
                "retry_after_minutes": minutes_remaining,
            }), 429

        user = auth_service.authenticate(email, password)

        if not user:
            failed_count = login_throttle_service.record_failed_attempt(
                identifier=email,
                ip_address=ip_address,
                user_agent=user_agent,
                reason="Invalid credentials"
            )

            remaining = login_throttle_service.MAX_FAILED_ATTEMPTS - failed_count
            if remaining <= 0:
                return jsonify({
                    "error": "Account locked due to too many failed login attempts",
                    "locked": True,
                    "retry_after_minutes": 15,
                }), 429
            elif remaining <= 3:
                return jsonify({
                    "error": "Invalid email or password",
                    "warning": f"{remaining} attempts remaining before account lockout"
                }), 401
            else:
                return jsonify({"error": "Invalid email or password"}), 401

        login_throttle_service.record_successful_login(
            user_id=user.id,
            identifier=email,
            ip_address=ip_address,
            user_agent=user_agent
        )

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        response = jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        })
        response.set_cookie(
            SESSION_COOKIE,
            token,
            max_age=int(SESSION_ABSOLUTE_TIMEOUT.total_seconds()),
            httponly=True,
            samesite="Lax",
            secure=not current_app.debug and not current_app.testing,
        )
        return response, 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/lockout-status/<identifier>")
def lockout_status_route(identifier: str):
    """Public check of whether an email is locked out and until when."""
    status = login_throttle_service.get_lockout_status(identifier.strip().lower())
    return jsonify(status)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """
    Revoke the current session token and clear the cookie.

    WHY: Explicit logout prevents token reuse.
    """
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({"message": "Logout successful"})
    response.delete_cookie(SESSION_COOKIE)
    return response, 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


# =============================================================================
# PASSWORD RESET
# =============================================================================

@auth_bp.post("/forgot-password")
def forgot_password_route():
    """
    Request a password reset link.

    Always answers with the same message so the endpoint cannot be used
    to discover which emails are registered.
    """
    data = request.get_json(silent=True) or {}
    try:
        password_reset_service.request_reset(data.get("email"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to process password reset request")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": password_reset_service.GENERIC_RESPONSE}), 200


@auth_bp.get("/reset-password")
def check_reset_token_route():
    try:
        reset = password_reset_service.check_token(request.args.get("token"))
    except ValidationError as e:
        return jsonify({"valid": False, "error": str(e)}), 400
    return jsonify({"valid": True, "email": reset.user.email}), 200


@auth_bp.post("/reset-password")
def reset_password_route():
    data = request.get_json(silent=True) or {}
    try:
        password_reset_service.reset_password(data.get("token"), data.get("password"))
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Password has been reset successfully"}), 200
