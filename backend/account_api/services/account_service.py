"""New-user registration."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from ..exceptions import DomainError
from ..models import User
from .user_manager import IdentityResult, UserManager

logger = structlog.get_logger(__name__)

DEFAULT_ROLE = "User"


@dataclass
class Registration:
    """A freshly created account, with its confirmation token when one is needed."""

    user: User
    confirmation_token: Optional[str] = None


def initial_claims(user: User) -> list[tuple[str, str]]:
    """Claims every new account starts with; role claims are added with the role."""

    return [
        ("name", user.username),
        ("email", user.email),
        ("email_verified", "true" if user.email_confirmed else "false"),
    ]


class AccountService:
    """Creates accounts; email delivery and sign-in stay with the caller."""

    def __init__(self, user_manager: UserManager) -> None:
        self.user_manager = user_manager

    async def create_user(self, user: User, password: str) -> IdentityResult:
        """Persist ``user`` with its starting claims and the default role in one commit."""

        return await self.user_manager.create(
            user, password, claims=initial_claims(user), roles=[DEFAULT_ROLE]
        )

    async def register_new_user(
        self,
        username: str,
        email: str,
        password: str,
        require_confirmed_email: bool,
    ) -> Registration:
        """
        Create a user after checking that the username and email are free.

        Raises:
            DomainError: the username or email is taken, or the password or
                username breaks policy.
        """

        if await self.user_manager.find_by_name(username) is not None:
            raise DomainError(f"Username '{username}' is already taken.")
        if await self.user_manager.find_by_email(email) is not None:
            raise DomainError(f"Email '{email}' is already registered.")

        user = User(username=username, email=email, email_confirmed=False)
        result = await self.create_user(user, password)
        if not result.succeeded:
            raise DomainError(" ".join(result.errors))

        logger.info("User registered", user_id=user.id, username=username)

        token = None
        if require_confirmed_email:
            token = await self.user_manager.generate_email_confirmation_token(user)
        return Registration(user=user, confirmation_token=token)
