"""Credential checks, lockout handling and session issuance."""
from __future__ import annotations

import enum

import structlog
from fastapi import Response

from ..config import Settings
from ..models import User
from ..security import create_session_token, session_lifetime
from .user_manager import UserManager

logger = structlog.get_logger(__name__)


class SignInResult(enum.Enum):
    SUCCEEDED = "succeeded"
    LOCKED_OUT = "locked_out"
    NOT_ALLOWED = "not_allowed"
    FAILED = "failed"


class SignInManager:
    """Validates credentials and writes the session cookie."""

    def __init__(self, user_manager: UserManager, settings: Settings) -> None:
        self.user_manager = user_manager
        self.settings = settings

    async def can_sign_in(self, user: User) -> bool:
        if self.settings.require_confirmed_email and not await self.user_manager.is_email_confirmed(user):
            return False
        return True

    async def check_password_sign_in(
        self, user: User, password: str, lockout_on_failure: bool = True
    ) -> SignInResult:
        if not await self.can_sign_in(user):
            return SignInResult.NOT_ALLOWED
        if await self.user_manager.is_locked_out(user):
            return SignInResult.LOCKED_OUT

        if await self.user_manager.check_password(user, password):
            await self.user_manager.reset_access_failed_count(user)
            return SignInResult.SUCCEEDED

        if lockout_on_failure:
            await self.user_manager.access_failed(user)
            if await self.user_manager.is_locked_out(user):
                return SignInResult.LOCKED_OUT
        return SignInResult.FAILED

    async def password_sign_in(
        self,
        response: Response,
        username: str,
        password: str,
        remember_me: bool = False,
        lockout_on_failure: bool = True,
    ) -> SignInResult:
        """Check credentials for ``username`` and issue a session on success."""

        user = await self.user_manager.find_by_name(username)
        if user is None:
            return SignInResult.FAILED

        result = await self.check_password_sign_in(user, password, lockout_on_failure)
        if result is SignInResult.SUCCEEDED:
            await self.sign_in(response, user, remember_me)
        return result

    async def sign_in(self, response: Response, user: User, remember_me: bool = False) -> str:
        """Issue a session token for ``user`` and set it as an http-only cookie."""

        claims = await self.user_manager.get_claims(user)
        roles = await self.user_manager.get_roles(user)
        token = create_session_token(user, claims, roles, self.settings, remember_me)
        response.set_cookie(
            key=self.settings.session_cookie_name,
            value=token,
            max_age=int(session_lifetime(self.settings, remember_me).total_seconds()) if remember_me else None,
            httponly=True,
            secure=self.settings.session_cookie_secure,
            samesite="lax",
        )
        return token

    def sign_out(self, response: Response) -> None:
        response.delete_cookie(
            key=self.settings.session_cookie_name,
            httponly=True,
            secure=self.settings.session_cookie_secure,
            samesite="lax",
        )
