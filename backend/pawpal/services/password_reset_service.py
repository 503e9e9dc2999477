# Overview: Service-layer operations for password reset; encapsulates business logic and database work.

"""
Password Reset Service

Token lifecycle: issued -> consumed, or issued -> expired.

SECURITY:
- One live token per user; reissuing overwrites the previous token
- Tokens expire one hour after issuance
- Requesting a reset never reveals whether the email exists
- Consumption is a single conditional UPDATE (used = false AND not expired),
  so two concurrent redemptions of one token cannot both succeed
- Sessions are revoked in the same transaction as the password change
"""

import secrets
from datetime import timedelta
from urllib.parse import urlencode

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import PasswordReset, User
from ..validation import ValidationError
from . import email_service, session_service
from .auth_service import set_password, validate_password_strength
from pawpal.time_utils import utcnow


TOKEN_TTL = timedelta(hours=1)
GENERIC_RESPONSE = "If an account exists with this email, you will receive a password reset link."


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def build_reset_url(token: str) -> str:
    base = current_app.config["APP_URL"].rstrip("/")
    return f"{base}/reset-password?{urlencode({'token': token})}"


def issue_token(user: User) -> PasswordReset:
    """Create or overwrite the user's reset token (caller commits)."""
    token = generate_reset_token()
    expires_at = utcnow() + TOKEN_TTL

    reset = db.session.query(PasswordReset).filter_by(user_id=user.id).first()
    if reset is None:
        reset = PasswordReset(user_id=user.id)
        db.session.add(reset)
    reset.token = token
    reset.expires_at = expires_at
    reset.used = False
    return reset


def request_reset(email: str | None) -> None:
    """
    Issue a reset token and queue the email when the account exists.

    Always returns normally for unknown emails; the caller answers with
    GENERIC_RESPONSE either way.
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")

    user = db.session.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
    ).first()
    if user is None:
        current_app.logger.info("Password reset requested for unknown email")
        return

    reset = issue_token(user)
    email_service.queue_notification_email(
        to=user.email,
        user_name=user.first_name or user.full_name,
        title="Password Reset Request",
        message=(
            "We received a request to reset your password. "
            "Click the button below to choose a new one. This link expires in 1 hour."
        ),
        notification_type="info",
        action_url=build_reset_url(reset.token),
        action_text="Reset Password",
    )
    db.session.commit()
    email_service.dispatch_pending()


def check_token(token: str | None) -> PasswordReset:
    """
    Read-only validity check used by the reset form.

    Raises ValidationError with the reason the token cannot be used.
    """
    if not token:
        raise ValidationError("Token is required")

    reset = db.session.query(PasswordReset).filter_by(token=token).first()
    if reset is None:
        raise ValidationError("Invalid token")
    if reset.used:
        raise ValidationError("Token has already been used")
    if utcnow() >= reset.expires_at:
        raise ValidationError("Token has expired")
    return reset


def reset_password(token: str | None, password: str | None) -> User:
    """
    Consume a reset token and set the new password in one transaction.

    Raises:
        ValidationError: missing fields, unknown/used/expired token
        PasswordValidationError: weak password
    """
    if not token or not password:
        raise ValidationError("Token and password are required")
    validate_password_strength(password)

    now = utcnow()
    claimed = db.session.execute(
        update(PasswordReset)
        .where(
            PasswordReset.token == token,
            PasswordReset.used.is_(False),
            PasswordReset.expires_at > now,
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )

    if claimed.rowcount != 1:
        db.session.rollback()
        reset = db.session.query(PasswordReset).filter_by(token=token).first()
        if reset is None:
            raise ValidationError("Invalid reset token")
        if reset.used:
            raise ValidationError("This reset link has already been used")
        raise ValidationError("This reset link has expired")

    try:
        reset = db.session.query(PasswordReset).filter_by(token=token).one()
        user = reset.user
        set_password(user, password)
        session_service.revoke_all_user_sessions(user.id, reason="Password reset", commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return user
