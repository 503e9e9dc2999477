# Overview: Flask API routes for categories and services; parses input and returns JSON responses.

"""
Service catalog routes.

SECURITY:
- Category and service management requires admin or employee
- The client service list requires any authenticated user
"""

from flask import Blueprint, request, current_app

from ..extensions import db
from ..services import catalog_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_role
from ..models.auth import STAFF_ROLES


catalog_bp = Blueprint("catalog", __name__)


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/api/admin/categories")
@require_auth
@require_role(*STAFF_ROLES)
def list_categories_route():
    """
    Query params:
    - search: name or description
    - status: active | inactive
    """
    try:
        categories = catalog_service.list_categories(
            search=request.args.get("search"),
            status=request.args.get("status"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch categories")
        return {"error": "Internal server error"}, 500
    return {"categories": categories}


@catalog_bp.get("/api/admin/categories/<int:category_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_category_route(category_id: int):
    try:
        category = catalog_service.category_details(category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"category": category}


@catalog_bp.post("/api/admin/categories")
@require_auth
@require_role(*STAFF_ROLES)
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        category = catalog_service.create_category(payload)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500

    return {"message": "Category created successfully", "category": category.to_dict()}, 201


@catalog_bp.put("/api/admin/categories/<int:category_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        category = catalog_service.update_category(category_id, payload)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update category %s", category_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Category updated successfully", "category": category.to_dict()}


@catalog_bp.delete("/api/admin/categories/<int:category_id>")
@require_auth
@require_role(*STAFF_ROLES)
def delete_category_route(category_id: int):
    """Refused while any service references the category."""
    try:
        catalog_service.delete_category(category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete category %s", category_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Category deleted successfully"}


# =============================================================================
# SERVICES
# =============================================================================

@catalog_bp.get("/api/admin/services")
@require_auth
@require_role(*STAFF_ROLES)
def list_services_route():
    """
    Query params:
    - search: name or description
    - category: category id or name ("all" for every category)
    - status: active | inactive
    """
    try:
        services = catalog_service.list_services(
            search=request.args.get("search"),
            category=request.args.get("category"),
            status=request.args.get("status"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch services")
        return {"error": "Internal server error"}, 500
    return {"services": services}


@catalog_bp.get("/api/admin/services/<int:service_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_service_route(service_id: int):
    try:
        service = catalog_service.get_service(service_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"service": service.to_dict()}


@catalog_bp.post("/api/admin/services")
@require_auth
@require_role(*STAFF_ROLES)
def create_service_route():
    payload = request.get_json(silent=True) or {}
    try:
        service = catalog_service.create_service(payload)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create service")
        return {"error": "Internal server error"}, 500

    return {"message": "Service created successfully", "service": service.to_dict()}, 201


@catalog_bp.put("/api/admin/services/<int:service_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_service_route(service_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        service = catalog_service.update_service(service_id, payload)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update service %s", service_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Service updated successfully", "service": service.to_dict()}


@catalog_bp.delete("/api/admin/services/<int:service_id>")
@require_auth
@require_role(*STAFF_ROLES)
def delete_service_route(service_id: int):
    try:
        catalog_service.delete_service(service_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete service %s", service_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Service deleted successfully"}


@catalog_bp.get("/api/client/services")
@require_auth
def client_services_route():
    """Active services ordered by category, each carrying its category."""
    try:
        services = catalog_service.list_active_services()
    except Exception:
        current_app.logger.exception("Failed to fetch services")
        return {"error": "Internal server error"}, 500
    return {"services": services}
