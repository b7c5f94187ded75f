"""Test fixtures for the backend."""
import os
from pathlib import Path
from typing import Iterable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_accounts.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-account-api-suite")

from account_api import models  # noqa: E402
from account_api.config import Settings, get_settings  # noqa: E402
from account_api.database import AsyncSessionLocal, engine  # noqa: E402
from account_api.dependencies import get_email_sender  # noqa: E402
from account_api.main import app  # noqa: E402
from account_api.models import User  # noqa: E402
from account_api.security import create_session_token  # noqa: E402
from account_api.services.account_service import initial_claims  # noqa: E402
from account_api.services.mailer import EmailMessage, EmailSender  # noqa: E402
from account_api.services.seed import ensure_seed_data  # noqa: E402
from account_api.services.user_manager import UserManager  # noqa: E402

test_db_path = Path("test_accounts.db")

DEFAULT_PASSWORD = "secret123"


class RecordingEmailSender(EmailSender):
    """Keeps messages in memory instead of talking to SMTP."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.outbox: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.outbox.append(message)

    def sent_to(self, address: str) -> list[EmailMessage]:
        return [
            message
            for message in self.outbox
            if any(recipient.address == address for recipient in message.to_addresses)
        ]


@pytest.fixture(scope="session", autouse=True)
def remove_database_file():
    yield
    if test_db_path.exists():
        test_db_path.unlink()


@pytest.fixture
def settings() -> Settings:
    """Per-test copy of the settings; tests may change fields freely."""

    return get_settings().model_copy()


@pytest_asyncio.fixture(autouse=True)
async def prepare_database(settings: Settings) -> None:
    """Create the schema and baseline roles before each test, drop it afterwards."""

    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    async with AsyncSessionLocal() as session:
        await ensure_seed_data(UserManager(session, settings), settings)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def mailbox(settings: Settings) -> RecordingEmailSender:
    return RecordingEmailSender(settings)


@pytest_asyncio.fixture
async def client(settings: Settings, mailbox: RecordingEmailSender) -> AsyncClient:
    """Provide an HTTP client for integration tests."""

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_email_sender] = lambda: mailbox
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(settings: Settings):
    """Factory creating a persisted user with claims and roles."""

    async def factory(
        username: str,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        roles: Iterable[str] = ("User",),
        confirmed: bool = True,
        extra_claims: Iterable[tuple[str, str]] = (),
    ) -> User:
        async with AsyncSessionLocal() as session:
            users = UserManager(session, settings)
            user = User(username=username, email=email or f"{username}@example.com", email_confirmed=confirmed)
            claims = initial_claims(user) + list(extra_claims)
            result = await users.create(user, password, claims=claims, roles=list(roles))
            assert result.succeeded, result.errors
            return user

    return factory


@pytest.fixture
def auth_headers(settings: Settings):
    """Factory returning a bearer header for the user as currently stored."""

    async def factory(user: User) -> dict[str, str]:
        async with AsyncSessionLocal() as session:
            users = UserManager(session, settings)
            current = await users.find_by_id(user.id)
            claims = await users.get_claims(current)
            roles = await users.get_roles(current)
        token = create_session_token(current, claims, roles, settings)
        return {"Authorization": f"Bearer {token}"}

    return factory


@pytest_asyncio.fixture
async def admin_headers(make_user, auth_headers) -> dict[str, str]:
    admin = await make_user("admin", roles=("Admin", "User"))
    return await auth_headers(admin)
