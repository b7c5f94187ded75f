"""Tests for per-user UI preferences."""
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from account_api.models import DEFAULT_LAST_PAGE, UserProfile
from account_api.schemas import UserProfileData
from account_api.services.profile_service import ProfileService


@pytest.mark.asyncio
async def test_get_returns_default_without_saving(db_session, make_user) -> None:
    user = await make_user("fresh")
    profiles = ProfileService(db_session)

    profile = await profiles.get(user.id)

    assert profile.user_id == user.id
    assert profile.last_page_visited == DEFAULT_LAST_PAGE
    assert profile.is_nav_open is True
    assert await db_session.scalar(select(func.count()).select_from(UserProfile)) == 0


@pytest.mark.asyncio
async def test_upsert_keeps_a_single_row(db_session, make_user) -> None:
    user = await make_user("returning")
    profiles = ProfileService(db_session)

    await profiles.upsert(UserProfileData(user_id=user.id, last_page_visited="/reports", count=1))
    saved = await profiles.upsert(
        UserProfileData(user_id=user.id, last_page_visited="/settings", is_nav_minified=True, count=2)
    )

    assert saved.last_page_visited == "/settings"
    assert saved.is_nav_minified is True
    assert saved.count == 2
    assert saved.last_updated_date is not None
    assert await db_session.scalar(select(func.count()).select_from(UserProfile)) == 1


@pytest.mark.asyncio
async def test_last_page_visited(db_session, make_user) -> None:
    user = await make_user("wanderer")
    profiles = ProfileService(db_session)

    assert await profiles.get_last_page_visited("wanderer") == DEFAULT_LAST_PAGE
    assert await profiles.get_last_page_visited("nobody") == DEFAULT_LAST_PAGE

    await profiles.upsert(UserProfileData(user_id=user.id, last_page_visited="/inbox"))
    assert await profiles.get_last_page_visited("WANDERER") == "/inbox"


@pytest.mark.asyncio
async def test_profile_endpoints_use_the_caller(client: AsyncClient, make_user, auth_headers) -> None:
    user = await make_user("owner")
    other = await make_user("bystander")
    headers = await auth_headers(user)

    anonymous = await client.get("/api/UserProfile/Get")
    assert anonymous.status_code == 401

    initial = await client.get("/api/UserProfile/Get", headers=headers)
    assert initial.status_code == 200
    assert initial.json()["message"] == "Retrieved User Profile"
    assert initial.json()["result"]["lastPageVisited"] == DEFAULT_LAST_PAGE

    saved = await client.post(
        "/api/UserProfile/Upsert",
        json={"userId": other.id, "lastPageVisited": "/orders", "isNavOpen": False},
        headers=headers,
    )
    assert saved.status_code == 200
    assert saved.json()["message"] == "Updated User Profile"
    assert saved.json()["result"]["userId"] == user.id

    reread = await client.get("/api/UserProfile/Get", headers=headers)
    assert reread.json()["result"]["lastPageVisited"] == "/orders"
    assert reread.json()["result"]["isNavOpen"] is False

    untouched = await client.get("/api/UserProfile/Get", headers=await auth_headers(other))
    assert untouched.json()["result"]["lastPageVisited"] == DEFAULT_LAST_PAGE

    login = await client.post("/api/Account/Login", json={"userName": "owner", "password": "secret123"})
    assert login.json()["message"] == "/orders"


@pytest.mark.asyncio
async def test_upsert_same_payload_twice_is_idempotent(db_session, make_user) -> None:
    user = await make_user("repeater")
    profiles = ProfileService(db_session)
    payload = UserProfileData(
        user_id=user.id, last_page_visited="/calendar", is_nav_open=False, is_nav_minified=True, count=7
    )

    first = await profiles.upsert(payload)
    second = await profiles.upsert(payload)

    assert second.model_dump(exclude={"last_updated_date"}) == first.model_dump(exclude={"last_updated_date"})
    assert await db_session.scalar(select(func.count()).select_from(UserProfile)) == 1
    stored = await profiles.get(user.id)
    assert stored.model_dump(exclude={"last_updated_date"}) == first.model_dump(exclude={"last_updated_date"})
