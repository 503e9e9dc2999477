# Overview: Flask API routes for admin and client dashboard figures.

from flask import Blueprint, current_app, g

from ..services import dashboard_service
from ..decorators import require_auth, require_role
from ..models.auth import STAFF_ROLES


dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.get("/api/admin/dashboard/stats")
@require_auth
@require_role(*STAFF_ROLES)
def admin_stats_route():
    try:
        return {"stats": dashboard_service.admin_stats()}
    except Exception:
        current_app.logger.exception("Failed to compute dashboard stats")
        return {"error": "Internal server error"}, 500


@dashboard_bp.get("/api/admin/dashboard/recent-appointments")
@require_auth
@require_role(*STAFF_ROLES)
def admin_recent_appointments_route():
    return {"appointments": dashboard_service.recent_appointments()}


@dashboard_bp.get("/api/admin/dashboard/recent-orders")
@require_auth
@require_role(*STAFF_ROLES)
def admin_recent_orders_route():
    return {"orders": dashboard_service.recent_orders()}


@dashboard_bp.get("/api/client/dashboard/stats")
@require_auth
def client_stats_route():
    try:
        return {"stats": dashboard_service.client_stats(g.current_user)}
    except Exception:
        current_app.logger.exception("Failed to compute dashboard stats")
        return {"error": "Internal server error"}, 500


@dashboard_bp.get("/api/client/dashboard/recent-appointments")
@require_auth
def client_recent_appointments_route():
    return {"appointments": dashboard_service.client_recent_appointments(g.current_user)}
