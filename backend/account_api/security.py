"""Password hashing, password policy and signed tokens."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from passlib.context import CryptContext

from .config import Settings
from .models import User

ALGORITHM = "HS256"

EMAIL_CONFIRMATION_PURPOSE = "EmailConfirmation"
RESET_PASSWORD_PURPOSE = "ResetPassword"
SESSION_PURPOSE = "Session"

ROLE_CLAIM = "role"

# Use PBKDF2-SHA256 instead of bcrypt to avoid bcrypt backend issues
password_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    return password_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain password against the stored hash."""
    if not password_hash:
        return False
    return password_context.verify(password, password_hash)


def password_policy_errors(password: str, settings: Settings) -> list[str]:
    """Return every policy rule ``password`` breaks; empty when it is acceptable."""

    errors: list[str] = []
    if len(password) < settings.password_required_length:
        errors.append(
            f"Passwords must be at least {settings.password_required_length} characters."
        )
    if settings.password_require_digit and not any(c.isdigit() for c in password):
        errors.append("Passwords must have at least one digit ('0'-'9').")
    if settings.password_require_lowercase and not any(c.islower() for c in password):
        errors.append("Passwords must have at least one lowercase ('a'-'z').")
    if settings.password_require_uppercase and not any(c.isupper() for c in password):
        errors.append("Passwords must have at least one uppercase ('A'-'Z').")
    if settings.password_require_non_alphanumeric and all(c.isalnum() for c in password):
        errors.append("Passwords must have at least one non alphanumeric character.")
    return errors


# ---------------------------------------------------------------------------
# Single-use user tokens
# ---------------------------------------------------------------------------
def generate_user_token(user: User, purpose: str, settings: Settings) -> str:
    """
    Issue a token bound to ``user``, ``purpose`` and the user's security stamp.

    Rotating the stamp (on email confirmation or password change) invalidates
    every token issued before it.
    """

    expires_at = datetime.now(timezone.utc) + timedelta(hours=settings.token_lifetime_hours)
    return jwt.encode(
        {
            "sub": user.id,
            "purpose": purpose,
            "stamp": user.security_stamp,
            "exp": int(expires_at.timestamp()),
        },
        settings.secret_key,
        algorithm=ALGORITHM,
    )


def validate_user_token(user: User, purpose: str, token: str, settings: Settings) -> bool:
    """True when ``token`` was issued for this user, purpose and current stamp."""

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return False
    return (
        payload.get("sub") == user.id
        and payload.get("purpose") == purpose
        and payload.get("stamp") == user.security_stamp
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@dataclass
class Principal:
    """The authenticated caller as described by its session claims."""

    user_id: str
    username: str
    stamp: str = ""
    claims: list[tuple[str, str]] = field(default_factory=list)

    @property
    def roles(self) -> list[str]:
        return [value for claim_type, value in self.claims if claim_type == ROLE_CLAIM]

    def has_claim(self, claim_type: str) -> bool:
        return any(existing == claim_type for existing, _ in self.claims)


def session_lifetime(settings: Settings, remember_me: bool) -> timedelta:
    if remember_me:
        return timedelta(days=settings.remember_me_days)
    return timedelta(minutes=settings.access_token_expires_minutes)


def create_session_token(
    user: User,
    claims: list[tuple[str, str]],
    roles: list[str],
    settings: Settings,
    remember_me: bool = False,
) -> str:
    """Encode the session JWT for ``user``."""

    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + session_lifetime(settings, remember_me)
    session_claims = [[claim_type, value] for claim_type, value in claims]
    session_claims.extend([ROLE_CLAIM, role] for role in roles)
    payload: dict[str, Any] = {
        "sub": user.id,
        "name": user.username,
        "stamp": user.security_stamp,
        "purpose": SESSION_PURPOSE,
        "claims": session_claims,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_session_token(token: str, settings: Settings) -> Optional[Principal]:
    """Return the principal for a valid session token, otherwise ``None``."""

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get("purpose") != SESSION_PURPOSE or not payload.get("sub"):
        return None
    claims = [
        (str(pair[0]), str(pair[1]))
        for pair in payload.get("claims", [])
        if isinstance(pair, list) and len(pair) == 2
    ]
    return Principal(
        user_id=payload["sub"],
        username=payload.get("name", ""),
        stamp=payload.get("stamp", ""),
        claims=claims,
    )
