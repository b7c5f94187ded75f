"""Unit tests for the identity building blocks."""
import pytest
from sqlalchemy.exc import IntegrityError

from account_api.models import User
from account_api.models.base import new_identifier
from account_api.security import (
    EMAIL_CONFIRMATION_PURPOSE,
    RESET_PASSWORD_PURPOSE,
    create_session_token,
    decode_session_token,
    generate_user_token,
    password_policy_errors,
    validate_user_token,
)
from account_api.services.user_manager import UserManager, role_claim_type


@pytest.mark.asyncio
async def test_password_policy_defaults(settings) -> None:
    assert password_policy_errors("sixsix", settings) == []
    assert password_policy_errors("five5", settings) == ["Passwords must be at least 6 characters."]


@pytest.mark.asyncio
async def test_password_policy_character_classes(settings) -> None:
    settings.password_require_digit = True
    settings.password_require_uppercase = True
    settings.password_require_non_alphanumeric = True

    errors = password_policy_errors("lowercase", settings)

    assert len(errors) == 3
    assert password_policy_errors("Upper-case1", settings) == []


@pytest.mark.asyncio
async def test_user_tokens_are_bound_to_purpose_and_stamp(settings) -> None:
    user = User(id="user-1", username="tokens", email="tokens@example.com", security_stamp="stamp-1")
    token = generate_user_token(user, RESET_PASSWORD_PURPOSE, settings)

    assert validate_user_token(user, RESET_PASSWORD_PURPOSE, token, settings)
    assert not validate_user_token(user, EMAIL_CONFIRMATION_PURPOSE, token, settings)
    assert not validate_user_token(user, RESET_PASSWORD_PURPOSE, "garbage", settings)

    other = User(id="user-2", username="other", email="other@example.com", security_stamp="stamp-1")
    assert not validate_user_token(other, RESET_PASSWORD_PURPOSE, token, settings)

    user.security_stamp = "stamp-2"
    assert not validate_user_token(user, RESET_PASSWORD_PURPOSE, token, settings)


@pytest.mark.asyncio
async def test_session_token_round_trip_and_purpose_check(settings) -> None:
    user = User(id="user-3", username="session", email="session@example.com", security_stamp="s")
    token = create_session_token(user, [("IsAdmin", "true")], ["Admin"], settings)

    principal = decode_session_token(token, settings)
    assert principal.user_id == "user-3"
    assert principal.username == "session"
    assert principal.stamp == "s"
    assert principal.roles == ["Admin"]
    assert principal.has_claim("IsAdmin")

    reset_token = generate_user_token(user, RESET_PASSWORD_PURPOSE, settings)
    assert decode_session_token(reset_token, settings) is None


@pytest.mark.asyncio
async def test_create_rejects_duplicates_and_bad_names(db_session, make_user, settings) -> None:
    await make_user("taken", email="taken@example.com")
    users = UserManager(db_session, settings)

    duplicate = await users.create(User(username="TAKEN", email="new@example.com"), "secret123")
    assert not duplicate.succeeded
    assert duplicate.errors == ["User name 'TAKEN' is already taken."]

    same_email = await users.create(User(username="fresh", email="Taken@Example.com"), "secret123")
    assert same_email.errors == ["Email 'Taken@Example.com' is already taken."]

    invalid = await users.create(User(username="has space", email="space@example.com"), "x")
    assert len(invalid.errors) == 2


@pytest.mark.asyncio
async def test_lockout_after_configured_failures(db_session, make_user, settings) -> None:
    settings.max_failed_access_attempts = 2
    user = await make_user("fumbler")
    users = UserManager(db_session, settings)
    user = await users.find_by_id(user.id)

    await users.access_failed(user)
    assert not await users.is_locked_out(user)
    await users.access_failed(user)
    assert await users.is_locked_out(user)
    assert user.access_failed_count == 0

    await users.reset_access_failed_count(user)
    assert not await users.is_locked_out(user)


@pytest.mark.asyncio
async def test_reconcile_roles(db_session, make_user, settings) -> None:
    users = UserManager(db_session, settings)
    for name in ("Alpha", "Beta", "Gamma"):
        await users.ensure_role(name)
    created = await make_user("shuffler", roles=("Alpha", "Beta"))
    user = await users.find_by_id(created.id)

    changes = await users.reconcile_roles(user, ["Beta", "Gamma"])

    assert changes.result.succeeded
    assert changes.added == ["Gamma"]
    assert changes.removed == ["Alpha"]
    assert await users.get_roles(user) == ["Beta", "Gamma"]
    role_claims = [claim for claim in await users.get_claims(user) if claim[0].startswith("Is")]
    assert sorted(role_claims) == [(role_claim_type("Beta"), "true"), (role_claim_type("Gamma"), "true")]


@pytest.mark.asyncio
async def test_reconcile_roles_with_unknown_role_changes_nothing(db_session, make_user, settings) -> None:
    created = await make_user("steady", roles=("User",))
    users = UserManager(db_session, settings)
    user = await users.find_by_id(created.id)

    changes = await users.reconcile_roles(user, ["User", "Ghost"])

    assert not changes.result.succeeded
    assert changes.result.errors == ["Role Ghost does not exist."]
    assert await users.get_roles(user) == ["User"]


@pytest.mark.asyncio
async def test_ensure_role_is_idempotent(db_session, settings) -> None:
    users = UserManager(db_session, settings)

    first = await users.ensure_role("Auditor")
    second = await users.ensure_role("auditor")

    assert first.id == second.id
    assert await users.list_role_names() == ["Admin", "Auditor", "User"]


@pytest.mark.asyncio
async def test_store_rejects_duplicate_normalized_email(db_session, make_user) -> None:
    await make_user("original", email="dup@example.com")
    db_session.add(
        User(
            id=new_identifier(),
            username="copycat",
            normalized_username="COPYCAT",
            email="DUP@example.com",
            normalized_email="DUP@EXAMPLE.COM",
        )
    )

    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_create_with_unknown_role_persists_nothing(db_session, settings) -> None:
    users = UserManager(db_session, settings)

    result = await users.create(
        User(username="orphan", email="orphan@example.com"),
        "secret123",
        claims=[("name", "orphan")],
        roles=["User", "Ghost"],
    )

    assert not result.succeeded
    assert result.errors == ["Role Ghost does not exist."]
    assert await users.find_by_name("orphan") is None


@pytest.mark.asyncio
async def test_create_stores_claims_and_roles_together(db_session, settings) -> None:
    users = UserManager(db_session, settings)
    user = User(username="bundle", email="bundle@example.com")

    result = await users.create(user, "secret123", claims=[("name", "bundle")], roles=["User"])

    assert result.succeeded
    assert await users.get_roles(user) == ["User"]
    assert await users.get_claims(user) == [("name", "bundle"), ("IsUser", "true")]
