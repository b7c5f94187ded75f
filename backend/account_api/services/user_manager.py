"""
User store operations.

Expected failures (duplicates, policy violations, bad tokens) come back as an
:class:`IdentityResult`; lookups return ``None`` for unknown records. Every
mutating method commits its own unit of work.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..models import Role, User, UserClaim, UserProfile, user_roles
from ..models.base import new_identifier
from ..security import (
    EMAIL_CONFIRMATION_PURPOSE,
    RESET_PASSWORD_PURPOSE,
    generate_user_token,
    hash_password,
    password_policy_errors,
    validate_user_token,
    verify_password,
)

logger = structlog.get_logger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9\-._@+]+$")


@dataclass
class IdentityResult:
    """Outcome of a store operation."""

    succeeded: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def success(cls) -> "IdentityResult":
        return cls(True)

    @classmethod
    def failed(cls, *errors: str) -> "IdentityResult":
        return cls(False, list(errors))

    @property
    def first_error(self) -> str:
        return self.errors[0] if self.errors else ""


@dataclass
class RoleChanges:
    """Memberships touched by :meth:`UserManager.reconcile_roles`."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    result: IdentityResult = field(default_factory=IdentityResult.success)


def normalize(value: str) -> str:
    return value.strip().upper()


def role_claim_type(role_name: str) -> str:
    """Claim mirrored onto members of ``role_name``."""
    return f"Is{role_name}"


class UserManager:
    """Persistence and credential operations for users, claims and roles."""

    def __init__(self, session: AsyncSession, settings: Settings) -> None:
        self.session = session
        self.settings = settings

    # ------------------------------------------------------------------ lookups
    async def find_by_id(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return await self.session.get(User, user_id)

    async def find_by_name(self, username: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.normalized_username == normalize(username))
        )
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.normalized_email == normalize(email))
        )
        return result.scalar_one_or_none()

    # ---------------------------------------------------------------- lifecycle
    async def _validate_user(self, user: User) -> list[str]:
        with self.session.no_autoflush:
            return await self._collect_user_errors(user)

    async def _collect_user_errors(self, user: User) -> list[str]:
        errors: list[str] = []
        if not user.username or not USERNAME_PATTERN.match(user.username):
            errors.append(f"User name '{user.username}' is invalid, can only contain letters or digits.")
        else:
            owner = await self.find_by_name(user.username)
            if owner is not None and owner.id != user.id:
                errors.append(f"User name '{user.username}' is already taken.")
        if not user.email:
            errors.append("Email '' is invalid.")
        else:
            owner = await self.find_by_email(user.email)
            if owner is not None and owner.id != user.id:
                errors.append(f"Email '{user.email}' is already taken.")
        return errors

    async def create(
        self,
        user: User,
        password: str,
        claims: Iterable[tuple[str, str]] = (),
        roles: Sequence[str] = (),
    ) -> IdentityResult:
        """
        Validate and persist a new user with a hashed credential.

        The user row, its ``claims`` and its ``roles`` (with their mirrored
        claims) are written in one commit, so a failure leaves nothing behind.
        A uniqueness violation raised by the store is reported like the
        equivalent validation error.
        """

        if user.id is None:
            user.id = new_identifier()
        user.normalized_username = normalize(user.username or "")
        user.normalized_email = normalize(user.email or "")
        errors = await self._validate_user(user)
        errors.extend(password_policy_errors(password, self.settings))
        known = await self._roles_by_name(roles)
        errors.extend(f"Role {name} does not exist." for name in roles if normalize(name) not in known)
        if errors:
            return IdentityResult.failed(*errors)

        user.password_hash = hash_password(password)
        user.security_stamp = new_identifier()
        self.session.add(user)
        try:
            await self.session.flush()
            for claim_type, claim_value in claims:
                self.session.add(UserClaim(user_id=user.id, claim_type=claim_type, claim_value=claim_value))
            for key in sorted({normalize(name) for name in roles}):
                await self._link_role(user, known[key])
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.info("User create rejected by the store", username=user.username)
            errors = await self._validate_user(user)
            return IdentityResult.failed(*(errors or [f"User name '{user.username}' is already taken."]))

        logger.info("User created", user_id=user.id, username=user.username)
        return IdentityResult.success()

    async def update(self, user: User) -> IdentityResult:
        user.normalized_username = normalize(user.username or "")
        user.normalized_email = normalize(user.email or "")
        errors = await self._validate_user(user)
        if errors:
            await self.session.rollback()
            await self.session.refresh(user)
            return IdentityResult.failed(*errors)
        await self.session.commit()
        return IdentityResult.success()

    async def delete(self, user: User) -> IdentityResult:
        """Remove the user together with its role links, claims and profile."""

        await self.session.execute(delete(user_roles).where(user_roles.c.user_id == user.id))
        await self.session.execute(delete(UserClaim).where(UserClaim.user_id == user.id))
        await self.session.execute(delete(UserProfile).where(UserProfile.user_id == user.id))
        await self.session.delete(user)
        await self.session.commit()
        logger.info("User deleted", user_id=user.id, username=user.username)
        return IdentityResult.success()

    # -------------------------------------------------------------- credentials
    async def check_password(self, user: User, password: str) -> bool:
        return verify_password(password, user.password_hash)

    async def _set_password(self, user: User, new_password: str) -> IdentityResult:
        errors = password_policy_errors(new_password, self.settings)
        if errors:
            return IdentityResult.failed(*errors)
        user.password_hash = hash_password(new_password)
        user.security_stamp = new_identifier()
        await self.session.commit()
        return IdentityResult.success()

    async def generate_password_reset_token(self, user: User) -> str:
        return generate_user_token(user, RESET_PASSWORD_PURPOSE, self.settings)

    async def reset_password(self, user: User, token: str, new_password: str) -> IdentityResult:
        if not validate_user_token(user, RESET_PASSWORD_PURPOSE, token, self.settings):
            return IdentityResult.failed("Invalid token.")
        return await self._set_password(user, new_password)

    async def generate_email_confirmation_token(self, user: User) -> str:
        return generate_user_token(user, EMAIL_CONFIRMATION_PURPOSE, self.settings)

    async def confirm_email(self, user: User, token: str) -> IdentityResult:
        if not validate_user_token(user, EMAIL_CONFIRMATION_PURPOSE, token, self.settings):
            return IdentityResult.failed("Invalid token.")
        user.email_confirmed = True
        user.security_stamp = new_identifier()
        await self.session.commit()
        return IdentityResult.success()

    async def is_email_confirmed(self, user: User) -> bool:
        return bool(user.email_confirmed)

    # ------------------------------------------------------------------ lockout
    async def is_locked_out(self, user: User) -> bool:
        if not user.lockout_enabled or user.lockout_end is None:
            return False
        return user.lockout_end > datetime.utcnow()

    async def access_failed(self, user: User) -> None:
        """Count a failed attempt and lock the account once the limit is hit."""

        user.access_failed_count = (user.access_failed_count or 0) + 1
        if user.lockout_enabled and user.access_failed_count >= self.settings.max_failed_access_attempts:
            user.lockout_end = datetime.utcnow() + timedelta(minutes=self.settings.lockout_minutes)
            user.access_failed_count = 0
            logger.info("User locked out", user_id=user.id, until=user.lockout_end.isoformat())
        await self.session.commit()

    async def reset_access_failed_count(self, user: User) -> None:
        if user.access_failed_count or user.lockout_end is not None:
            user.access_failed_count = 0
            user.lockout_end = None
            await self.session.commit()

    # ------------------------------------------------------------------- claims
    async def get_claims(self, user: User) -> list[tuple[str, str]]:
        result = await self.session.execute(
            select(UserClaim.claim_type, UserClaim.claim_value)
            .where(UserClaim.user_id == user.id)
            .order_by(UserClaim.id)
        )
        return [(claim_type, claim_value) for claim_type, claim_value in result.all()]

    async def has_claim(self, user: User, claim_type: str) -> bool:
        result = await self.session.execute(
            select(UserClaim.id)
            .where(UserClaim.user_id == user.id, UserClaim.claim_type == claim_type)
            .limit(1)
        )
        return result.first() is not None

    # -------------------------------------------------------------------- roles
    async def list_role_names(self) -> list[str]:
        result = await self.session.execute(select(Role.name).order_by(Role.name))
        return list(result.scalars().all())

    async def get_roles(self, user: User) -> list[str]:
        result = await self.session.execute(
            select(Role.name)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .where(user_roles.c.user_id == user.id)
            .order_by(Role.name)
        )
        return list(result.scalars().all())

    async def _roles_by_name(self, names: Iterable[str]) -> dict[str, Role]:
        normalized = {normalize(name) for name in names}
        if not normalized:
            return {}
        result = await self.session.execute(select(Role).where(Role.normalized_name.in_(normalized)))
        return {role.normalized_name: role for role in result.scalars().all()}

    async def _link_role(self, user: User, role: Role) -> None:
        await self.session.execute(insert(user_roles).values(user_id=user.id, role_id=role.id))
        self.session.add(UserClaim(user_id=user.id, claim_type=role_claim_type(role.name), claim_value="true"))

    async def reconcile_roles(self, user: User, target: Sequence[str]) -> RoleChanges:
        """
        Make the user's memberships equal ``target``.

        Memberships and their mirrored ``Is{Role}`` claims are added and removed
        in a single commit; nothing is written when a target role is unknown.
        Any change rotates the security stamp, ending the user's open sessions.
        """

        current = await self.get_roles(user)
        current_normalized = {normalize(name) for name in current}
        target_normalized = {normalize(name) for name in target}

        known = await self._roles_by_name(target)
        missing = [name for name in target if normalize(name) not in known]
        if missing:
            return RoleChanges(result=IdentityResult.failed(*(f"Role {name} does not exist." for name in missing)))

        to_add = [known[key] for key in sorted(target_normalized - current_normalized)]
        to_remove = [name for name in current if normalize(name) not in target_normalized]

        for role in to_add:
            await self._link_role(user, role)

        if to_remove:
            removed_roles = await self._roles_by_name(to_remove)
            await self.session.execute(
                delete(user_roles).where(
                    user_roles.c.user_id == user.id,
                    user_roles.c.role_id.in_([role.id for role in removed_roles.values()]),
                )
            )
            await self.session.execute(
                delete(UserClaim).where(
                    UserClaim.user_id == user.id,
                    UserClaim.claim_type.in_([role_claim_type(name) for name in to_remove]),
                )
            )

        if to_add or to_remove:
            user.security_stamp = new_identifier()
        await self.session.commit()
        return RoleChanges(added=[role.name for role in to_add], removed=to_remove)

    async def ensure_role(self, name: str) -> Role:
        existing = (await self._roles_by_name([name])).get(normalize(name))
        if existing is not None:
            return existing
        role = Role(name=name, normalized_name=normalize(name))
        self.session.add(role)
        await self.session.commit()
        logger.info("Role created", role=name)
        return role
