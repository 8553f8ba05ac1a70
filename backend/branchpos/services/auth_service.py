# Overview: Service-layer operations for staff accounts and password checks.

"""
Authentication Service

WHY: Every stock movement, sale and shift is attributed to a staff user.
Passwords are hashed with bcrypt; session tokens live in session_service.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Emails are unique and compared lower-cased
"""

import re

import bcrypt

from ..extensions import db
from ..errors import AuthError, ConflictError, NotFoundError, ValidationError
from ..models import Branch, User
from ..models.auth import ROLE_ADMIN, ROLES


BCRYPT_ROUNDS = 12
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_password_strength(password: str) -> None:
    """Raises ValidationError when the password is too weak."""
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one digit")


def hash_password(password: str, *, rounds: int = BCRYPT_ROUNDS) -> str:
    """bcrypt hash, stored as str."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    *,
    name: str,
    email: str,
    password: str,
    role: str,
    branch_id: int | None = None,
    bcrypt_rounds: int = BCRYPT_ROUNDS,
) -> User:
    """
    Create a staff account.

    Non-admin roles work at one branch, so they require branch_id.
    """
    if not name or not str(name).strip():
        raise ValidationError("name is required")
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if role != ROLE_ADMIN and not branch_id:
        raise ValidationError(f"branch_id is required for role {role}")
    if branch_id and db.session.get(Branch, branch_id) is None:
        raise NotFoundError(f"Branch {branch_id} not found")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists")

    user = User(
        name=str(name).strip(),
        email=email,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
        role=role,
        branch_id=branch_id,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User:
    """
    Return the active user for the credentials.

    Raises AuthError with one generic message for every failure so the
    response never reveals which emails exist.
    """
    user = db.session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if user is None or not user.is_active or not verify_password(password or "", user.password_hash):
        raise AuthError("Invalid email or password")
    return user
