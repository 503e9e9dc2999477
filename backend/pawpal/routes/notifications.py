# Overview: Flask API routes for in-app notifications of the current user.

from flask import Blueprint, request, current_app, g

from ..extensions import db
from ..services import notification_service
from ..validation import NotFoundError
from ..decorators import require_auth


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/client/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """Latest 20 notifications plus the unread count."""
    try:
        return notification_service.list_recent(g.current_user.id)
    except Exception:
        current_app.logger.exception("Failed to fetch notifications")
        return {"error": "Internal server error"}, 500


@notifications_bp.patch("")
@require_auth
def mark_notifications_route():
    """
    Body: {"notificationId": int} or {"markAllRead": true}
    """
    data = request.get_json(silent=True) or {}
    try:
        if data.get("markAllRead"):
            updated = notification_service.mark_all_read(g.current_user.id)
            return {"message": "All notifications marked as read", "updated": updated}

        notification_id = data.get("notificationId")
        if not notification_id:
            return {"error": "notificationId or markAllRead is required"}, 400
        notification_service.mark_read(g.current_user.id, int(notification_id))
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except (TypeError, ValueError):
        return {"error": "notificationId must be an integer"}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update notifications")
        return {"error": "Internal server error"}, 500

    return {"message": "Notification marked as read"}
