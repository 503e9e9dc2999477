# Overview: Flask API routes for user administration and the client profile.

"""
User management routes.

Provides endpoints for:
- Staff account management (list, create, update, activate, delete)
- A user's pets and appointments for the admin console
- The client's own profile

SECURITY:
- Listing and viewing users requires admin or employee
- Creating, editing, activating and deleting users requires admin
"""

from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..services import auth_service, pet_service, user_service
from ..services.auth_service import PasswordValidationError
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, STAFF_ROLES

users_bp = Blueprint("users", __name__)


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@users_bp.get("/api/admin/users")
@require_auth
@require_role(*STAFF_ROLES)
def list_users_route():
    """
    Query params:
    - role: admin | employee | client ("all" for every role)
    - search: name or email
    """
    try:
        users = user_service.list_users(
            role=request.args.get("role"),
            search=request.args.get("search"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch users")
        return {"error": "Internal server error"}, 500
    return {"users": users, "count": len(users)}


@users_bp.get("/api/admin/users/<int:user_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"user": user.to_dict()}


@users_bp.post("/api/admin/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Create a staff account.

    Request body:
    - first_name, last_name, email, password (required)
    - role: admin | employee (required)
    - phone, address (optional)
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return {"error": "Email and password are required"}, 400

    try:
        user = auth_service.create_staff_user(data)
    except PasswordValidationError as e:
        return {"error": str(e)}, 400
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return {"error": "Internal server error"}, 500

    return {"message": "User created successfully", "user": user.to_dict()}, 201


@users_bp.put("/api/admin/users/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(g.current_user, user_id, data)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user %s", user_id)
        return {"error": "Internal server error"}, 500

    return {"message": "User updated successfully", "user": user.to_dict()}


@users_bp.patch("/api/admin/users/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def set_user_active_route(user_id: int):
    """
    Body: {"is_active": bool}

    SECURITY: Deactivation revokes every session of the user.
    """
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.set_active(g.current_user, user_id, data.get("is_active"))
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to change status of user %s", user_id)
        return {"error": "Internal server error"}, 500

    state = "activated" if user.is_active else "deactivated"
    return {"message": f"User {state} successfully", "user": user.to_dict()}


@users_bp.delete("/api/admin/users/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: int):
    try:
        user_service.delete_user(g.current_user, user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete user %s", user_id)
        return {"error": "Internal server error"}, 500

    return {"message": "User deleted successfully"}


@users_bp.get("/api/admin/users/<int:user_id>/pets")
@require_auth
@require_role(*STAFF_ROLES)
def user_pets_route(user_id: int):
    try:
        user_service.get_user(user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"pets": pet_service.list_pets(user_id)}


@users_bp.get("/api/admin/users/<int:user_id>/appointments")
@require_auth
@require_role(*STAFF_ROLES)
def user_appointments_route(user_id: int):
    try:
        appointments = user_service.user_appointments(user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"appointments": appointments}


# =============================================================================
# CLIENT PROFILE
# =============================================================================

@users_bp.get("/api/client/profile")
@require_auth
def get_profile_route():
    return {"user": g.current_user.to_dict()}


@users_bp.put("/api/client/profile")
@require_auth
def update_profile_route():
    """Editable: first_name, last_name, phone, address."""
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.update_profile(g.current_user, data)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update profile")
        return {"error": "Internal server error"}, 500

    return {"message": "Profile updated successfully", "user": user.to_dict()}
