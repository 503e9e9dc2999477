# Overview: Service-layer operations for user administration and client profiles.

"""
User Service

Admin user management (staff creation, edits, activation, deletion) and
the client's own profile. Staff accounts are created here; client
accounts come from self-registration in auth_service.
"""

from __future__ import annotations

from ..extensions import db
from ..models import (
    Appointment,
    Notification,
    Order,
    PasswordReset,
    Transaction,
    User,
)
from ..models.auth import ROLES
from ..validation import NotFoundError, ValidationError
from . import auth_service, session_service


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(*, role: str | None = None, search: str | None = None) -> list[dict]:
    query = db.session.query(User)
    if role and role != "all":
        query = query.filter(User.role == role)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            User.first_name.ilike(like),
            User.last_name.ilike(like),
            User.email.ilike(like),
        ))
    users = query.order_by(User.created_at.desc(), User.id.desc()).all()
    return [u.to_dict() for u in users]


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def update_user(actor: User, user_id: int, data: dict) -> User:
    """
    Admin edit. Email must stay unique among other users; deactivating an
    account revokes its sessions.
    """
    user = get_user(user_id)
    data = data or {}
    if user.id == actor.id and "is_active" in data and not _as_bool(data["is_active"]):
        raise ValidationError("You cannot deactivate your own account")

    if "email" in data:
        email = auth_service.normalize_email(data.get("email"))
        if auth_service.email_in_use(email, exclude_user_id=user.id):
            raise ValidationError("Email is already in use by another user")
        user.email = email

    if "role" in data and data["role"] != user.role:
        if data["role"] not in ROLES:
            raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")
        user.role = data["role"]

    for field in ("first_name", "last_name"):
        if field in data:
            value = (data.get(field) or "").strip()
            if not value:
                raise ValidationError("First name and last name are required")
            setattr(user, field, value)

    for field in ("phone", "address"):
        if field in data:
            setattr(user, field, (data.get(field) or "").strip() or None)

    if "is_active" in data:
        _apply_active(user, _as_bool(data["is_active"]))

    db.session.commit()
    return user


def _apply_active(user: User, active: bool) -> None:
    if user.is_active and not active:
        session_service.revoke_all_user_sessions(user.id, "account_deactivated", commit=False)
    user.is_active = active


def set_active(actor: User, user_id: int, is_active) -> User:
    if is_active is None:
        raise ValidationError("is_active is required")
    user = get_user(user_id)
    active = _as_bool(is_active)
    if user.id == actor.id and not active:
        raise ValidationError("You cannot deactivate your own account")
    _apply_active(user, active)
    db.session.commit()
    return user


def delete_user(actor: User, user_id: int) -> None:
    """
    Hard delete. Accounts with appointment or order history are kept for
    the ledger; deactivate those instead.
    """
    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account")

    has_history = (
        db.session.query(Appointment.id).filter(Appointment.user_id == user.id).first()
        or db.session.query(Order.id).filter(Order.user_id == user.id).first()
    )
    if has_history:
        raise ValidationError(
            "Cannot delete a user with appointments or orders. Deactivate the account instead."
        )

    db.session.query(Notification).filter(Notification.user_id == user.id).delete(synchronize_session=False)
    db.session.query(PasswordReset).filter(PasswordReset.user_id == user.id).delete(synchronize_session=False)
    db.session.query(Transaction).filter(Transaction.user_id == user.id).delete(synchronize_session=False)
    db.session.delete(user)
    db.session.commit()


def user_appointments(user_id: int) -> list[dict]:
    get_user(user_id)
    appointments = (
        db.session.query(Appointment)
        .filter(Appointment.user_id == user_id)
        .order_by(Appointment.appointment_date.desc(), Appointment.id.desc())
        .all()
    )
    return [a.to_dict() for a in appointments]


# ---------------------------------------------------------------------------
# Client profile
# ---------------------------------------------------------------------------

def update_profile(user: User, data: dict) -> User:
    data = data or {}
    for field in ("first_name", "last_name"):
        if field in data:
            value = (data.get(field) or "").strip()
            if not value:
                raise ValidationError("First name and last name are required")
            setattr(user, field, value)
    for field in ("phone", "address"):
        if field in data:
            setattr(user, field, (data.get(field) or "").strip() or None)
    db.session.commit()
    return user
