# Overview: Service-layer operations for notifications; encapsulates business logic and database work.

"""
Notification Service

Notifications are staged in the caller's transaction together with the
status change that caused them, plus a queued email for the recipient.
Nothing here commits except the read-state helpers.
"""

from flask import current_app

from ..extensions import db
from ..models import Notification, User
from ..models.auth import ROLE_ADMIN
from ..validation import NotFoundError
from . import email_service


RECENT_LIMIT = 20


def notify(
    user: User,
    *,
    title: str,
    message: str,
    notification_type: str = "info",
    related_type: str | None = None,
    related_id: int | None = None,
    send_email: bool = True,
    action_path: str | None = None,
    action_text: str | None = None,
) -> Notification:
    """Stage a notification (and optionally its email) for one user."""
    notification = Notification(
        user_id=user.id,
        title=title,
        message=message,
        type=notification_type,
        is_read=False,
        related_type=related_type,
        related_id=related_id,
    )
    db.session.add(notification)

    if send_email and user.email:
        action_url = None
        if action_path:
            action_url = current_app.config["APP_URL"].rstrip("/") + action_path
        email_service.queue_notification_email(
            to=user.email,
            user_name=user.first_name or user.full_name,
            title=title,
            message=message,
            notification_type=notification_type,
            action_url=action_url,
            action_text=action_text,
        )
    return notification


def notify_staff(
    *,
    title: str,
    message: str,
    notification_type: str = "info",
    related_type: str | None = None,
    related_id: int | None = None,
) -> list[Notification]:
    """Stage an in-app notification for every active admin."""
    admins = db.session.query(User).filter(
        User.role == ROLE_ADMIN,
        User.is_active.is_(True),
    ).order_by(User.id.asc()).all()
    return [
        notify(
            admin,
            title=title,
            message=message,
            notification_type=notification_type,
            related_type=related_type,
            related_id=related_id,
            send_email=False,
        )
        for admin in admins
    ]


def list_recent(user_id: int, *, limit: int = RECENT_LIMIT) -> dict:
    notifications = (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )
    unread = db.session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).count()
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unreadCount": unread,
    }


def mark_read(user_id: int, notification_id: int) -> None:
    notification = db.session.query(Notification).filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.session.commit()


def mark_all_read(user_id: int) -> int:
    updated = db.session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).update({Notification.is_read: True}, synchronize_session=False)
    db.session.commit()
    return updated
