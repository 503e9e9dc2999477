# Overview: Flask API routes for cages and boarding; parses input and returns JSON responses.

"""
Cage management and boarding availability routes.

SECURITY:
- /api/admin/* requires admin or employee
- /api/client/cages/availability requires any authenticated user
"""

from flask import Blueprint, request, current_app

from ..extensions import db
from ..services import cage_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_role
from ..models.auth import STAFF_ROLES


cages_bp = Blueprint("cages", __name__)


@cages_bp.get("/api/admin/cages")
@require_auth
@require_role(*STAFF_ROLES)
def list_cages_route():
    """
    List cages ordered by cage number.

    Query params (the value "all" means no filter):
    - status, type
    - check_in, check_out: when both are given, cages with an overlapping
      reserved/checked_in reservation are left out
    """
    try:
        cages = cage_service.list_cages(
            status=request.args.get("status"),
            cage_type=request.args.get("type"),
            check_in=request.args.get("check_in"),
            check_out=request.args.get("check_out"),
        )
    except ValidationError as e:
        return {"success": False, "error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to fetch cages")
        return {"success": False, "error": "Failed to fetch cages"}, 500

    return {"success": True, "cages": cages}


@cages_bp.post("/api/admin/cages")
@require_auth
@require_role(*STAFF_ROLES)
def create_cage_route():
    payload = request.get_json(silent=True) or {}
    try:
        cage = cage_service.create_cage(payload)
    except ValidationError as e:
        db.session.rollback()
        return {"success": False, "error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create cage")
        return {"success": False, "error": "Failed to create cage"}, 500

    return {"success": True, "message": "Cage created successfully", "cage": cage.to_dict()}, 201


@cages_bp.get("/api/admin/cages/<int:cage_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_cage_route(cage_id: int):
    try:
        cage = cage_service.get_cage(cage_id)
    except NotFoundError as e:
        return {"success": False, "error": str(e)}, 404
    return {"success": True, "cage": cage.to_dict()}


@cages_bp.put("/api/admin/cages/<int:cage_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_cage_route(cage_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        cage = cage_service.update_cage(cage_id, payload)
    except NotFoundError as e:
        return {"success": False, "error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"success": False, "error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update cage %s", cage_id)
        return {"success": False, "error": "Failed to update cage"}, 500

    return {"success": True, "message": "Cage updated successfully", "cage": cage.to_dict()}


@cages_bp.delete("/api/admin/cages/<int:cage_id>")
@require_auth
@require_role(*STAFF_ROLES)
def delete_cage_route(cage_id: int):
    """Refused while the cage is occupied or holds an active reservation."""
    try:
        cage_service.delete_cage(cage_id)
    except NotFoundError as e:
        return {"success": False, "error": str(e)}, 404
    except ValidationError as e:
        return {"success": False, "error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete cage %s", cage_id)
        return {"success": False, "error": "Failed to delete cage"}, 500

    return {"success": True, "message": "Cage deleted successfully"}


@cages_bp.get("/api/admin/boarding")
@require_auth
@require_role(*STAFF_ROLES)
def boarding_overview_route():
    """Every cage with its current occupant and next upcoming reservation."""
    try:
        cages = cage_service.boarding_overview()
    except Exception:
        current_app.logger.exception("Failed to fetch boarding overview")
        return {"success": False, "error": "Internal server error"}, 500
    return {"success": True, "cages": cages}


@cages_bp.get("/api/client/cages/availability")
@require_auth
def cage_availability_route():
    """
    Available cages for a stay.

    Query params:
    - check_in_date, check_out_date (YYYY-MM-DD, both required)
    """
    try:
        result = cage_service.check_availability(
            request.args.get("check_in_date"),
            request.args.get("check_out_date"),
        )
    except ValidationError as e:
        return {"success": False, "error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to check cage availability")
        return {"success": False, "error": "Failed to check cage availability"}, 500

    return result
