# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Staff Authentication Service

WHY: Every order transition and stock movement must be attributable to the
staff member who performed it. Uses bcrypt for password hashing and validates
password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
- Branch-bound staff can only log in while their branch is active
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy import or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, StaffUser
from ..permissions import ROLES
from ..time_utils import utcnow
from ..validation import optional_text


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str,
    branch_id: int | None = None,
) -> StaffUser:
    """
    Create a staff account.

    Admins are never bound to a branch; every other role must be.
    """
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if role == "admin":
        branch_id = None
    elif branch_id is None:
        raise ValidationError(f"{role} accounts must belong to a branch")

    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if branch is None:
            raise NotFoundError("Branch not found")
        if not branch.is_active:
            raise ValidationError("Branch is not active")

    username = optional_text(username, "username", max_length=64) or ""
    email = (optional_text(email, "email", max_length=255) or "").lower()
    if not username or not email:
        raise ValidationError("username and email are required")

    existing = db.session.query(StaffUser).filter(
        or_(StaffUser.username == username, StaffUser.email == email)
    ).first()
    if existing:
        raise ValidationError("Username or email already exists")

    user = StaffUser(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        branch_id=branch_id,
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Created %s account %s", role, username)
    return user


def authenticate(username: str, password: str) -> StaffUser | None:
    """
    Authenticate by username or email.

    Returns the user if credentials are valid, None otherwise.
    Updates last_login_at on success.
    """
    user = db.session.query(StaffUser).filter(
        or_(StaffUser.username == username, StaffUser.email == (username or "").lower()),
        StaffUser.is_active.is_(True),
    ).first()

    if not user:
        return None

    if user.branch_id is not None:
        branch = db.session.get(Branch, user.branch_id)
        if not branch or not branch.is_active:
            return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
