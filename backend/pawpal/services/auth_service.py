# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every booking, order and verification must be attributable.
Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
- Email is the login identifier and is stored lower-cased
"""

import bcrypt
import re
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_CLIENT, STAFF_ROLES
from ..validation import ValidationError
from pawpal.time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes never match.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    return email


def email_in_use(email: str, *, exclude_user_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is not None


def create_user(
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    role: str = ROLE_CLIENT,
    phone: str | None = None,
    address: str | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: missing names, invalid email, duplicate email
        PasswordValidationError: weak password
    """
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("First name and last name are required")

    email = normalize_email(email)
    if email_in_use(email):
        raise ValidationError("Email already exists")

    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=hash_password(password),
        phone=(phone or "").strip() or None,
        address=(address or "").strip() or None,
        role=role,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    return user


def register_client(data: dict) -> User:
    """Self-registration always produces a client account."""
    return create_user(
        first_name=data.get("first_name") or data.get("firstName"),
        last_name=data.get("last_name") or data.get("lastName"),
        email=data.get("email"),
        password=data.get("password"),
        phone=data.get("phone"),
        address=data.get("address"),
        role=ROLE_CLIENT,
    )


def create_staff_user(data: dict) -> User:
    """Admin-created accounts are limited to staff roles."""
    role = data.get("role")
    if role not in STAFF_ROLES:
        raise ValidationError("Invalid role. Must be admin or employee")
    return create_user(
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        email=data.get("email"),
        password=data.get("password"),
        phone=data.get("phone"),
        address=data.get("address"),
        role=role,
    )


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def set_password(user: User, password: str) -> None:
    """Stage a new password hash on the user (caller commits)."""
    user.password_hash = hash_password(password)


def ensure_default_admin(email: str, password: str) -> tuple[User, bool]:
    """
    Create the bootstrap admin account if no user has that email.

    Returns (user, created).
    """
    existing = db.session.query(User).filter_by(email=email.lower()).first()
    if existing:
        return existing, False
    user = create_user(
        first_name="Clinic",
        last_name="Admin",
        email=email,
        password=password,
        role=ROLE_ADMIN,
    )
    return user, True
