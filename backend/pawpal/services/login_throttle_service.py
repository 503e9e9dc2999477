"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.
After too many failures, the account is temporarily locked.

SECURITY FEATURES:
- Tracks failed attempts per email
- Lockout after MAX_FAILED_ATTEMPTS failures within LOCKOUT_WINDOW
- Lockout duration: LOCKOUT_DURATION minutes
- Uses security_events table for tracking
"""

from datetime import timedelta
from ..extensions import db
from ..models import SecurityEvent, User
from pawpal.time_utils import utcnow


MAX_FAILED_ATTEMPTS = 10
LOCKOUT_WINDOW = timedelta(minutes=15)
LOCKOUT_DURATION = timedelta(minutes=15)


def _failed_attempts_query(identifier: str):
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == identifier,
    )


def get_recent_failed_attempts(identifier: str) -> int:
    """Count failed login attempts for an identifier within LOCKOUT_WINDOW."""
    cutoff = utcnow() - LOCKOUT_WINDOW
    return _failed_attempts_query(identifier).filter(SecurityEvent.occurred_at >= cutoff).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Check if an account is currently locked due to too many failed attempts.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if get_recent_failed_attempts(identifier) < MAX_FAILED_ATTEMPTS:
        return False, None

    most_recent = _failed_attempts_query(identifier).order_by(SecurityEvent.occurred_at.desc()).first()
    if most_recent:
        lockout_end = most_recent.occurred_at + LOCKOUT_DURATION
        now = utcnow()
        if now < lockout_end:
            return True, int((lockout_end - now).total_seconds())

    return False, None


def _record(
    event_type: str,
    identifier: str,
    *,
    user_id,
    success: bool,
    reason,
    ip_address,
    user_agent,
    resource: str = "/api/auth/login",
) -> None:
    db.session.add(SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=identifier,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:255] or None,
        occurred_at=utcnow(),
    ))
    db.session.commit()


def record_failed_attempt(
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials"
) -> int:
    """
    Record a failed login attempt.

    Returns the total number of recent failed attempts.
    """
    user = db.session.query(User).filter(User.email == identifier).first()
    _record(
        "LOGIN_FAILED",
        identifier,
        user_id=user.id if user else None,
        success=False,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return get_recent_failed_attempts(identifier)


def record_successful_login(
    user_id: int,
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None
) -> None:
    """Record a successful login for the audit trail."""
    _record(
        "LOGIN_SUCCESS",
        identifier,
        user_id=user_id,
        success=True,
        reason=None,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def record_permission_denied(
    user_id: int,
    *,
    resource: str,
    method: str,
    required_roles: tuple[str, ...],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Audit a request rejected by a role check."""
    _record(
        "PERMISSION_DENIED",
        method,
        user_id=user_id,
        success=False,
        reason=f"Requires one of: {', '.join(required_roles)}",
        ip_address=ip_address,
        user_agent=user_agent,
        resource=resource[:255],
    )


def get_lockout_status(identifier: str) -> dict:
    failed_count = get_recent_failed_attempts(identifier)
    is_locked, seconds_remaining = is_account_locked(identifier)

    return {
        "locked": is_locked,
        "failed_attempts": failed_count,
        "max_attempts": MAX_FAILED_ATTEMPTS,
        "seconds_until_unlock": seconds_remaining,
        "lockout_window_minutes": int(LOCKOUT_WINDOW.total_seconds() / 60),
        "lockout_duration_minutes": int(LOCKOUT_DURATION.total_seconds() / 60),
    }


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """Delete security events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
