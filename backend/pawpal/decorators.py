# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, login_throttle_service


SESSION_COOKIE = "session_token"


def _request_token() -> str | None:
    """Bearer token from the Authorization header, else the session cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header:
        if not auth_header.startswith("Bearer "):
            return None
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(SESSION_COOKIE) or None


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require an authenticated, active user.

    Sets g.current_user to the User behind the session token.

    SECURITY: Returns 401 if:
    - No token (neither Authorization header nor session cookie)
    - Unknown, expired, idle or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require the current user to hold one of the given roles.

    Must be applied below @require_auth. Denials are written to
    security_events.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if user.role not in roles:
                login_throttle_service.record_permission_denied(
                    user.id,
                    resource=request.path,
                    method=request.method,
                    required_roles=roles,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
