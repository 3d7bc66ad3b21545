"""Tests for session management."""

import time
from unittest.mock import patch

import pytest
import pytest_asyncio
from fastapi import HTTPException

from api.session import (
    SESSION_KEY_EMAIL,
    SESSION_KEY_USER_ID,
    InMemorySessionStore,
    SessionError,
    SessionSigner,
    create_session,
    delete_session,
    extract_session_id,
    get_session,
    get_session_signer,
    on_session_expired,
    require_session,
    resolve_session,
)


def _two_hours_later():
    original_time = time.time

    def mock_time():
        return original_time() + 7200

    return patch("time.time", mock_time)


class TestSessionSigner:
    """Tests for SessionSigner class."""

    def test_sign_creates_token(self):
        """Test that sign creates a non-empty token."""
        signer = SessionSigner(secret_key="test-secret")
        session_id = "test-session-123"

        token = signer.sign(session_id)

        assert token
        assert token != session_id

    def test_unsign_returns_original_id(self):
        """Test that unsign returns the original session ID."""
        signer = SessionSigner(secret_key="test-secret")
        token = signer.sign("test-session-456")

        assert signer.unsign(token, max_age=3600) == "test-session-456"

    def test_unsign_invalid_token_returns_none(self):
        """Test that unsign returns None for invalid tokens."""
        signer = SessionSigner(secret_key="test-secret")

        assert signer.unsign("invalid-token-data", max_age=3600) is None

    def test_unsign_wrong_secret_returns_none(self):
        """Test that unsign returns None when using wrong secret key."""
        signer1 = SessionSigner(secret_key="secret-one")
        signer2 = SessionSigner(secret_key="secret-two")

        token = signer1.sign("test-session")

        assert signer2.unsign(token, max_age=3600) is None

    def test_unsign_expired_token_returns_none(self):
        """Test that unsign returns None for expired tokens."""
        signer = SessionSigner(secret_key="test-secret")
        token = signer.sign("test-session")

        with _two_hours_later():
            assert signer.unsign(token, max_age=3600) is None

    def test_expired_session_id(self):
        """An expired but genuine token still reveals its session ID."""
        signer = SessionSigner(secret_key="test-secret")
        token = signer.sign("test-session")

        with _two_hours_later():
            assert signer.expired_session_id(token, max_age=3600) == "test-session"

    def test_expired_session_id_ignores_live_and_forged_tokens(self):
        signer = SessionSigner(secret_key="test-secret")
        token = signer.sign("test-session")

        assert signer.expired_session_id(token, max_age=3600) is None
        assert signer.expired_session_id("forged.token", max_age=3600) is None

    def test_different_sessions_produce_different_tokens(self):
        signer = SessionSigner(secret_key="test-secret")

        assert signer.sign("session-1") != signer.sign("session-2")

    def test_global_signer_is_shared(self):
        assert get_session_signer() is get_session_signer()


class TestInMemorySessionStore:
    """Tests for InMemorySessionStore class."""

    @pytest_asyncio.fixture
    async def store(self):
        """Create a fresh session store."""
        return InMemorySessionStore()

    @pytest.mark.asyncio
    async def test_set_and_get_session(self, store):
        data = {"user_id": "user-1", "email": "a@example.com"}

        await store.set("test-session", data, ttl=3600)

        assert await store.get("test-session") == data

    @pytest.mark.asyncio
    async def test_get_nonexistent_returns_none(self, store):
        assert await store.get("nonexistent-session") is None

    @pytest.mark.asyncio
    async def test_delete_session(self, store):
        await store.set("test-session", {"data": "value"}, ttl=3600)

        await store.delete("test-session")

        assert await store.get("test-session") is None

    @pytest.mark.asyncio
    async def test_delete_nonexistent_session_no_error(self, store):
        await store.delete("nonexistent-session")

    @pytest.mark.asyncio
    async def test_session_expiration(self, store):
        """Test that expired sessions are not returned."""
        await store.set("test-session", {"data": "value"}, ttl=1)
        assert await store.get("test-session") == {"data": "value"}

        time.sleep(1.5)

        assert await store.get("test-session") is None

    @pytest.mark.asyncio
    async def test_create_session_id_is_raw_uuid(self, store):
        assert len(store.create_session_id()) == 36


class TestSessionHelpers:
    """Tests for the module-level session helpers."""

    @pytest.mark.asyncio
    async def test_create_session_returns_signed_token(self):
        token = await create_session({SESSION_KEY_USER_ID: "user-1"})

        session_id = extract_session_id(token)

        assert session_id is not None
        assert session_id != token
        assert await get_session(session_id) == {SESSION_KEY_USER_ID: "user-1"}

    @pytest.mark.asyncio
    async def test_delete_session(self):
        token = await create_session({SESSION_KEY_USER_ID: "user-1"})
        session_id = extract_session_id(token)

        await delete_session(session_id)
        assert await get_session(session_id) is None


class TestResolveSession:
    """Tests for resolving tokens to players."""

    @pytest.mark.asyncio
    async def test_valid_token(self):
        token = await create_session(
            {SESSION_KEY_USER_ID: "user-1", SESSION_KEY_EMAIL: "a@example.com"}
        )

        context = await resolve_session(token)

        assert context.user_id == "user-1"
        assert context.email == "a@example.com"
        assert context.session_id == extract_session_id(token)

    @pytest.mark.asyncio
    async def test_forged_token(self):
        with pytest.raises(SessionError, match="Invalid session"):
            await resolve_session("not-a-token")

    @pytest.mark.asyncio
    async def test_deleted_session(self):
        token = await create_session({SESSION_KEY_USER_ID: "user-1"})
        await delete_session(extract_session_id(token))

        with pytest.raises(SessionError, match="Session not found"):
            await resolve_session(token)

    @pytest.mark.asyncio
    async def test_session_without_user(self):
        token = await create_session({})

        with pytest.raises(SessionError, match="Session not found"):
            await resolve_session(token)

    @pytest.mark.asyncio
    async def test_expired_token_notifies_listeners(self):
        expired = []
        on_session_expired(expired.append)
        token = await create_session({SESSION_KEY_USER_ID: "user-1"})
        session_id = extract_session_id(token)

        with _two_hours_later():
            with pytest.raises(SessionError, match="Session expired"):
                await resolve_session(token)

        assert expired == [session_id]
        assert await get_session(session_id) is None

    @pytest.mark.asyncio
    async def test_require_session_maps_to_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_session("not-a-token")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid session"
