"""
Tests for the authentication service.

Tests cover:
- Registration and validation
- Login and session tokens
- Profile and password changes
- Account deletion
"""

from datetime import datetime, timedelta, timezone

import pytest

from errors import AuthError, ConflictError, NotFoundError, ValidationError
from factories import result
from models.user import Anonymous, Authenticated, UserRole
from services.auth_service import AuthService


@pytest.fixture
def auth(store):
    return AuthService(store, store, secret_key="test-secret", admin_emails=["Boss@Example.com"])


class TestRegistration:
    """Tests for account creation."""

    @pytest.mark.asyncio
    async def test_register_opens_session(self, auth, store):
        res = await auth.register("Ada", "Ada@Example.com", "secret1")

        assert res.user.email == "ada@example.com"
        assert res.user.role == UserRole.USER
        assert res.token
        aggregate = await store.get_aggregate(res.user.id)
        assert aggregate.games_played == 0

        identity = await auth.get_user_from_token(res.token)
        assert isinstance(identity, Authenticated)
        assert identity.user_id == res.user.id

    @pytest.mark.asyncio
    async def test_token_stored_hashed(self, auth, store):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        assert await store.get_session_by_token_hash(res.token) is None
        assert await store.get_session_by_token_hash(auth.hash_token(res.token)) is not None

    @pytest.mark.asyncio
    async def test_password_hashed(self, auth):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        assert res.user.password_hash != "secret1"
        assert res.user.password_hash.startswith("$2")

    @pytest.mark.asyncio
    async def test_all_problems_reported(self, auth):
        with pytest.raises(ValidationError) as exc:
            await auth.register("A", "not-an-email", "123")
        assert {d["field"] for d in exc.value.details} == {"name", "email", "password"}

    @pytest.mark.asyncio
    async def test_duplicate_email(self, auth):
        await auth.register("Ada", "ada@example.com", "secret1")
        with pytest.raises(ConflictError):
            await auth.register("Other", "ADA@example.com", "secret2")

    @pytest.mark.asyncio
    async def test_admin_email(self, auth):
        res = await auth.register("Boss", "boss@example.com", "secret1")
        assert res.user.role == UserRole.ADMIN


class TestLogin:
    """Tests for login, logout and token resolution."""

    @pytest.mark.asyncio
    async def test_login(self, auth):
        await auth.register("Ada", "ada@example.com", "secret1")
        res = await auth.login("ADA@example.com", "secret1")
        assert res.user.last_login is not None

    @pytest.mark.asyncio
    async def test_wrong_password(self, auth):
        await auth.register("Ada", "ada@example.com", "secret1")
        with pytest.raises(AuthError) as exc:
            await auth.login("ada@example.com", "wrong")
        assert exc.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_unknown_email_same_error(self, auth):
        with pytest.raises(AuthError) as exc:
            await auth.login("nobody@example.com", "secret1")
        assert exc.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_logout_revokes(self, auth):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        assert await auth.logout(res.token) is True
        assert isinstance(await auth.get_user_from_token(res.token), Anonymous)
        assert await auth.logout(res.token) is False

    @pytest.mark.asyncio
    async def test_missing_or_unknown_token(self, auth):
        assert isinstance(await auth.get_user_from_token(None), Anonymous)
        assert isinstance(await auth.get_user_from_token("made-up"), Anonymous)

    @pytest.mark.asyncio
    async def test_expired_token(self, auth, store):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        session = await store.get_session_by_token_hash(auth.hash_token(res.token))
        session.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        assert isinstance(await auth.get_user_from_token(res.token), Anonymous)


class TestProfile:
    """Tests for profile and password management."""

    @pytest.mark.asyncio
    async def test_update_name_and_email(self, auth):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        user = await auth.update_profile(res.user.id, name="  Ada L  ", email="ADA.L@example.com")
        assert user.name == "Ada L"
        assert user.email == "ada.l@example.com"

    @pytest.mark.asyncio
    async def test_update_to_taken_email(self, auth):
        await auth.register("Ada", "ada@example.com", "secret1")
        res = await auth.register("Bob", "bob@example.com", "secret1")
        with pytest.raises(ConflictError):
            await auth.update_profile(res.user.id, email="ada@example.com")

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, auth):
        with pytest.raises(NotFoundError):
            await auth.update_profile("ghost", name="Ghost")

    @pytest.mark.asyncio
    async def test_change_password_revokes_sessions(self, auth):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        await auth.change_password(res.user.id, "secret1", "secret2")

        assert isinstance(await auth.get_user_from_token(res.token), Anonymous)
        await auth.login("ada@example.com", "secret2")

    @pytest.mark.asyncio
    async def test_change_password_checks_current(self, auth):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        with pytest.raises(AuthError):
            await auth.change_password(res.user.id, "wrong", "secret2")

    @pytest.mark.asyncio
    async def test_change_password_too_short(self, auth):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        with pytest.raises(ValidationError) as exc:
            await auth.change_password(res.user.id, "secret1", "123")
        assert exc.value.details[0]["field"] == "newPassword"


class TestDeleteAccount:
    """Tests for hard deletion."""

    @pytest.mark.asyncio
    async def test_delete_removes_everything(self, auth, store, submissions):
        res = await auth.register("Ada", "ada@example.com", "secret1")
        await submissions.submit(Authenticated(res.user), result(500))

        assert await auth.delete_account(res.user.id) is True

        assert await store.get_user_by_id(res.user.id) is None
        assert await store.get_aggregate(res.user.id) is None
        assert await store.list_scores(user_id=res.user.id) == []
        assert isinstance(await auth.get_user_from_token(res.token), Anonymous)

    @pytest.mark.asyncio
    async def test_delete_unknown(self, auth):
        assert await auth.delete_account("ghost") is False
