"""Integration tests for signing in and out."""
import pytest
from httpx import AsyncClient

from account_api.database import AsyncSessionLocal
from account_api.schemas import UserProfileData
from account_api.services.profile_service import ProfileService

DEFAULT_PASSWORD = "secret123"


@pytest.mark.asyncio
async def test_login_returns_default_landing_page_and_session(client: AsyncClient, make_user) -> None:
    """A user without a profile row lands on /dashboard and gets a session cookie."""

    await make_user("alice")

    response = await client.post(
        "/api/Account/Login", json={"userName": "alice", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 200
    assert response.json() == {"statusCode": 200, "message": "/dashboard", "result": None}
    assert "account_session" in response.cookies

    info = (await client.get("/api/Account/UserInfo")).json()["result"]
    assert info["isAuthenticated"] is True
    assert info["userName"] == "alice"
    assert info["roles"] == ["User"]
    assert {"key": "IsUser", "value": "true"} in info["exposedClaims"]


@pytest.mark.asyncio
async def test_login_returns_stored_last_page(client: AsyncClient, make_user) -> None:
    user = await make_user("bob")
    async with AsyncSessionLocal() as session:
        await ProfileService(session).upsert(
            UserProfileData(user_id=user.id, last_page_visited="/reports")
        )

    response = await client.post(
        "/api/Account/Login", json={"userName": "BOB", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 200
    assert response.json()["message"] == "/reports"


@pytest.mark.asyncio
async def test_wrong_password_and_unknown_user_are_indistinguishable(
    client: AsyncClient, make_user
) -> None:
    await make_user("carol")

    wrong_password = await client.post(
        "/api/Account/Login", json={"userName": "carol", "password": "not-it"}
    )
    unknown_user = await client.post(
        "/api/Account/Login", json={"userName": "nobody", "password": "not-it"}
    )

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()
    assert wrong_password.json()["message"] == "Login Failed"


@pytest.mark.asyncio
async def test_repeated_failures_lock_the_account(client: AsyncClient, make_user, settings) -> None:
    settings.max_failed_access_attempts = 3
    await make_user("dave")

    for _ in range(2):
        response = await client.post(
            "/api/Account/Login", json={"userName": "dave", "password": "wrong"}
        )
        assert response.json()["message"] == "Login Failed"

    response = await client.post("/api/Account/Login", json={"userName": "dave", "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["message"] == "User is locked out!"

    response = await client.post(
        "/api/Account/Login", json={"userName": "dave", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["message"] == "User is locked out!"


@pytest.mark.asyncio
async def test_unconfirmed_email_is_not_allowed_when_confirmation_required(
    client: AsyncClient, make_user, settings
) -> None:
    settings.require_confirmed_email = True
    await make_user("erin", confirmed=False)

    response = await client.post(
        "/api/Account/Login", json={"userName": "erin", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Login not allowed!"


@pytest.mark.asyncio
async def test_malformed_login_is_rejected_before_lookup(client: AsyncClient) -> None:
    response = await client.post("/api/Account/Login", json={"userName": "frank"})
    assert response.status_code == 400
    body = response.json()
    assert body["statusCode"] == 400
    assert body["message"] == "User Model is Invalid"


@pytest.mark.asyncio
async def test_logout_clears_the_session(client: AsyncClient, make_user) -> None:
    await make_user("gina")
    await client.post("/api/Account/Login", json={"userName": "gina", "password": DEFAULT_PASSWORD})

    response = await client.post("/api/Account/Logout")
    assert response.status_code == 200
    assert response.json()["message"] == "Logout Successful"

    info = (await client.get("/api/Account/UserInfo")).json()["result"]
    assert info["isAuthenticated"] is False
    assert info["roles"] == []


@pytest.mark.asyncio
async def test_logout_requires_a_session(client: AsyncClient) -> None:
    response = await client.post("/api/Account/Logout")
    assert response.status_code == 401
    assert response.json()["statusCode"] == 401


@pytest.mark.asyncio
async def test_get_user_reports_anonymous_and_signed_in_callers(
    client: AsyncClient, make_user, auth_headers
) -> None:
    anonymous = (await client.get("/api/Account/GetUser")).json()
    assert anonymous["result"]["isAuthenticated"] is False
    assert anonymous["result"]["userName"] is None

    user = await make_user("hank")
    signed_in = (await client.get("/api/Account/GetUser", headers=await auth_headers(user))).json()
    assert signed_in["message"] == "Get User Successful"
    assert signed_in["result"]["isAuthenticated"] is True
    assert signed_in["result"]["userName"] == "hank"


@pytest.mark.asyncio
async def test_user_info_exposes_only_profile_and_role_flag_claims(client: AsyncClient, make_user) -> None:
    await make_user("iris", roles=("Admin", "User"), extra_claims=[("internal_note", "vip")])
    await client.post("/api/Account/Login", json={"userName": "iris", "password": DEFAULT_PASSWORD})

    info = (await client.get("/api/Account/UserInfo")).json()["result"]

    keys = {claim["key"] for claim in info["exposedClaims"]}
    assert keys == {"name", "email", "email_verified", "IsAdmin", "IsUser"}
    assert info["roles"] == ["Admin", "User"]
