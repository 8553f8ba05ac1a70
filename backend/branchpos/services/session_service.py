# Overview: Service-layer operations for bearer session tokens.

"""
Session Token Management Service

WHY: Stateless clients (tills, back office) authenticate every request
with a bearer token issued at login.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- Revocable on logout
"""

import hashlib
import secrets
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from branchpos.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)


def generate_token() -> str:
    """64-character hex string sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 of the token.

    Tokens are high-entropy, so a fast hash is enough (unlike passwords).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """Returns (session_record, plaintext_token)."""
    plaintext_token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def validate_session(token: str) -> User | None:
    """
    The active user behind a token, or None if the token is unknown,
    revoked, expired or belongs to a deactivated user.
    """
    if not token:
        return None
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None:
        return None
    if session.expires_at <= utcnow():
        return None

    user = session.user
    if user is None or not user.is_active:
        return None
    return user


def revoke_session(token: str) -> bool:
    """True if a live session was revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
