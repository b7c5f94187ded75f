"""Reusable FastAPI dependencies."""
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import get_session
from .exceptions import AuthenticationError, AuthorizationError
from .security import Principal, decode_session_token
from .services.account_service import AccountService
from .services.api_log_service import ApiLogService
from .services.mailer import EmailSender
from .services.profile_service import ProfileService
from .services.sign_in import SignInManager
from .services.user_manager import UserManager

logger = structlog.get_logger(__name__)

ADMIN_POLICY_CLAIM = "IsAdmin"

# Bearer tokens are accepted alongside the session cookie
bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields an AsyncSession."""
    async for session in get_session():
        yield session


def get_user_manager(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> UserManager:
    return UserManager(session, settings)


def get_sign_in_manager(
    user_manager: UserManager = Depends(get_user_manager),
    settings: Settings = Depends(get_settings),
) -> SignInManager:
    return SignInManager(user_manager, settings)


def get_account_service(user_manager: UserManager = Depends(get_user_manager)) -> AccountService:
    return AccountService(user_manager)


def get_profile_service(session: AsyncSession = Depends(get_db_session)) -> ProfileService:
    return ProfileService(session)


def get_api_log_service(session: AsyncSession = Depends(get_db_session)) -> ApiLogService:
    return ApiLogService(session)


def get_email_sender(settings: Settings = Depends(get_settings)) -> EmailSender:
    return EmailSender(settings)


def session_token_from_request(
    request: Request,
    settings: Settings,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """Bearer header first, then the session cookie."""

    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name)


async def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
    users: UserManager = Depends(get_user_manager),
) -> Optional[Principal]:
    """
    The caller's principal, or ``None`` for anonymous requests.

    A session whose user no longer exists, or whose security stamp no longer
    matches the stored one, counts as anonymous.
    """

    token = session_token_from_request(request, settings, credentials)
    if not token:
        return None
    principal = decode_session_token(token, settings)
    if principal is None:
        return None

    user = await users.find_by_id(principal.user_id)
    if user is None or user.security_stamp != principal.stamp:
        logger.info("Stale session rejected", user_id=principal.user_id)
        return None
    return principal


async def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    """Require an authenticated session."""

    if principal is None:
        raise AuthenticationError("Not authenticated")
    return principal


async def require_admin(
    principal: Principal = Depends(get_current_principal),
    users: UserManager = Depends(get_user_manager),
) -> Principal:
    """Require the ``IsAdmin`` policy claim as currently stored for the caller."""

    user = await users.find_by_id(principal.user_id)
    if user is None or not await users.has_claim(user, ADMIN_POLICY_CLAIM):
        raise AuthorizationError("Administrator role required")
    return principal
