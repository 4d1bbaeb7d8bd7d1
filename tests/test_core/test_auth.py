from datetime import timedelta
from unittest.mock import AsyncMock, patch

import jwt
import pytest

from core.auth import AuthenticationService, JWTManager, PasswordManager, SessionStore
from core.exceptions import AuthenticationError, ConflictError, ValidationError


class TestPasswordManager:
    def test_hash_and_verify(self):
        hashed = PasswordManager.hash_password("Password123")

        assert hashed != "Password123"
        assert PasswordManager.verify_password("Password123", hashed) is True
        assert PasswordManager.verify_password("Password124", hashed) is False

    def test_weak_password_is_not_hashed(self):
        with pytest.raises(ValidationError):
            PasswordManager.hash_password("weak")

    def test_malformed_hash(self):
        assert PasswordManager.verify_password("Password123", "not-a-bcrypt-hash") is False


class TestJWTManager:
    def test_round_trip_claims(self):
        manager = JWTManager(secret_key="secret")
        token, expires_at = manager.create_token("u1", "alice", "sid-1")

        payload = manager.verify_token(token)

        assert payload["sub"] == "u1"
        assert payload["username"] == "alice"
        assert payload["sid"] == "sid-1"

    def test_expired_token(self):
        manager = JWTManager(secret_key="secret", expires_in=timedelta(seconds=-1))
        token, _ = manager.create_token("u1", "alice", "sid-1")

        with pytest.raises(AuthenticationError) as exc_info:
            manager.verify_token(token)
        assert "expired" in exc_info.value.message

    def test_wrong_secret(self):
        token, _ = JWTManager(secret_key="secret").create_token("u1", "alice", "sid-1")

        with pytest.raises(AuthenticationError):
            JWTManager(secret_key="other").verify_token(token)

    def test_token_without_session_is_rejected(self):
        manager = JWTManager(secret_key="secret")
        token = jwt.encode(
            {"sub": "u1", "exp": 9999999999, "iss": manager.ISSUER, "aud": manager.AUDIENCE},
            "secret",
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError):
            manager.verify_token(token)


class TestSessionStore:
    async def test_create_get_revoke(self, cache_manager):
        store = SessionStore(cache=cache_manager)

        session_id = await store.create("u1", "alice")
        assert (await store.get(session_id))["user_id"] == "u1"

        assert await store.revoke(session_id) is True
        assert await store.get(session_id) is None

    async def test_revoke_user_sessions(self, cache_manager):
        store = SessionStore(cache=cache_manager)
        await store.create("u1", "alice")
        await store.create("u1", "alice")
        other = await store.create("u2", "bob")

        assert await store.revoke_user_sessions("u1") == 2
        assert await store.get(other) is not None

    async def test_revoke_user_sessions_when_scan_fails(self, cache_manager):
        store = SessionStore(cache=cache_manager)
        session_id = await store.create("u1", "alice")

        with patch.object(
            cache_manager.backend, "keys", new=AsyncMock(side_effect=ConnectionError("redis down"))
        ):
            assert await store.revoke_user_sessions("u1") == 0
        assert await store.get(session_id) is not None


@pytest.fixture
def auth_service(session_factory, cache_manager) -> AuthenticationService:
    return AuthenticationService(
        session_factory,
        jwt_manager=JWTManager(secret_key="secret"),
        session_store=SessionStore(cache=cache_manager),
    )


class TestAuthenticationService:
    async def test_register_and_validate(self, auth_service):
        issued = await auth_service.register("alice", "Alice@Example.com", "Password123")

        account = await auth_service.validate_token(issued.token)

        assert account.username == "alice"
        assert account.email == "alice@example.com"
        assert issued.user.id == account.id

    async def test_duplicate_username_is_case_insensitive(self, auth_service):
        await auth_service.register("alice", "alice@example.com", "Password123")

        with pytest.raises(ConflictError) as exc_info:
            await auth_service.register("ALICE", "other@example.com", "Password123")
        assert exc_info.value.details["reason"] == "Username already exists"

    async def test_duplicate_email(self, auth_service):
        await auth_service.register("alice", "alice@example.com", "Password123")

        with pytest.raises(ConflictError) as exc_info:
            await auth_service.register("alice2", "alice@example.com", "Password123")
        assert exc_info.value.details["reason"] == "Email already exists"

    async def test_login_with_username_or_email(self, auth_service):
        await auth_service.register("alice", "alice@example.com", "Password123")

        by_name = await auth_service.login("alice", "Password123")
        by_email = await auth_service.login("ALICE@example.com", "Password123")

        assert by_name.user.id == by_email.user.id

    async def test_login_username_is_case_insensitive(self, auth_service):
        issued = await auth_service.register("alice", "alice@example.com", "Password123")

        token = await auth_service.login("Alice", "Password123")

        assert token.user.id == issued.user.id

    @pytest.mark.parametrize("identifier,password", [("alice", "Wrong1234"), ("nobody", "Password123"), ("", "")])
    async def test_login_failures_are_indistinguishable(self, auth_service, identifier, password):
        await auth_service.register("alice", "alice@example.com", "Password123")

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_service.login(identifier, password)
        assert exc_info.value.details["reason"] == "Invalid credentials"

    async def test_logout_revokes_token(self, auth_service):
        issued = await auth_service.register("alice", "alice@example.com", "Password123")

        await auth_service.logout(issued.token)

        with pytest.raises(AuthenticationError):
            await auth_service.validate_token(issued.token)

    async def test_logout_with_invalid_token_is_a_no_op(self, auth_service):
        await auth_service.logout("garbage")

    async def test_refresh_replaces_session(self, auth_service):
        issued = await auth_service.register("alice", "alice@example.com", "Password123")

        refreshed = await auth_service.refresh(issued.token)

        assert (await auth_service.validate_token(refreshed.token)).username == "alice"
        with pytest.raises(AuthenticationError):
            await auth_service.validate_token(issued.token)

    async def test_update_profile_only_touches_supplied_fields(self, auth_service):
        issued = await auth_service.register("alice", "alice@example.com", "Password123")
        await auth_service.update_profile(issued.user.id, bio="Crate digger")

        updated = await auth_service.update_profile(issued.user.id, display_name="Alice")

        assert updated.display_name == "Alice"
        assert updated.bio == "Crate digger"

    async def test_update_profile_rejects_bad_avatar_url(self, auth_service):
        issued = await auth_service.register("alice", "alice@example.com", "Password123")

        with pytest.raises(ValidationError):
            await auth_service.update_profile(issued.user.id, avatar_url="ftp://example.com/a.png")
