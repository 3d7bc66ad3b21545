"""Signed player sessions with Redis backend and in-memory fallback."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Annotated, Any, Callable
from uuid import uuid4

import redis.asyncio as redis
from fastapi import Header, HTTPException
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from api.logging_utils import get_logger
from api.store import KEY_PREFIX, get_redis
from config import config

logger = get_logger(__name__)

# Session data keys
SESSION_KEY_USER_ID = "user_id"
SESSION_KEY_EMAIL = "email"
SESSION_KEY_ROUND = "round"
SESSION_KEY_CREATED_AT = "created_at"
SESSION_KEY_LAST_ACTIVITY = "last_activity"


class SessionSigner:
    """Sign and verify session IDs using itsdangerous."""

    def __init__(self, secret_key: str | None = None) -> None:
        """Initialize the signer with a secret key."""
        self._secret_key = secret_key or config.security.secret_key
        self._serializer = URLSafeTimedSerializer(self._secret_key, salt="blackjack-session")

    def sign(self, session_id: str) -> str:
        """Create a signed token from a session ID."""
        return self._serializer.dumps(session_id)

    def unsign(self, token: str, max_age: int | None = None) -> str | None:
        """
        Verify and extract session_id from a signed token.

        Args:
            token: The signed token to verify
            max_age: Maximum age in seconds (defaults to session_ttl)

        Returns:
            The session ID if valid, None otherwise
        """
        max_age = max_age or config.session_ttl
        try:
            return self._serializer.loads(token, max_age=max_age)
        except BadSignature:
            return None

    def expired_session_id(self, token: str, max_age: int | None = None) -> str | None:
        """Return the session ID of a genuine token that has expired, else None."""
        max_age = max_age or config.session_ttl
        try:
            self._serializer.loads(token, max_age=max_age)
        except SignatureExpired as exc:
            if exc.payload is None:
                return None
            return self._serializer.load_payload(exc.payload)
        except BadSignature:
            return None
        return None


# Global signer instance
_session_signer: SessionSigner | None = None


def get_session_signer() -> SessionSigner:
    """Get or create the session signer."""
    global _session_signer
    if _session_signer is None:
        _session_signer = SessionSigner()
    return _session_signer


class SessionStore(ABC):
    """Abstract session store."""

    @abstractmethod
    async def get(self, session_id: str) -> dict[str, Any] | None:
        """Get session data."""
        ...

    @abstractmethod
    async def set(self, session_id: str, data: dict[str, Any], ttl: int | None = None) -> None:
        """Set session data."""
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Delete session."""
        ...

    def create_session_id(self) -> str:
        """Create a new raw session ID."""
        return str(uuid4())


class InMemorySessionStore(SessionStore):
    """In-memory session store for local development."""

    def __init__(self) -> None:
        self._sessions: dict[str, tuple[dict[str, Any], datetime]] = {}

    async def get(self, session_id: str) -> dict[str, Any] | None:
        """Get session data."""
        if session_id not in self._sessions:
            return None

        data, expiry = self._sessions[session_id]
        if expiry < datetime.now():
            await self.delete(session_id)
            return None

        return data

    async def set(
        self,
        session_id: str,
        data: dict[str, Any],
        ttl: int | None = None,
    ) -> None:
        """Set session data."""
        ttl = ttl or config.session_ttl
        expiry = datetime.now() + timedelta(seconds=ttl)
        self._sessions[session_id] = (data, expiry)

    async def delete(self, session_id: str) -> None:
        """Delete session."""
        self._sessions.pop(session_id, None)


class RedisSessionStore(SessionStore):
    """Redis-backed session store."""

    def __init__(self, redis_client: "redis.Redis") -> None:
        self._redis = redis_client
        self._prefix = f"{KEY_PREFIX}:session:"

    def _key(self, session_id: str) -> str:
        """Get Redis key for session."""
        return f"{self._prefix}{session_id}"

    async def get(self, session_id: str) -> dict[str, Any] | None:
        """Get session data."""
        data = await self._redis.get(self._key(session_id))
        if data is None:
            return None
        return json.loads(data)

    async def set(
        self,
        session_id: str,
        data: dict[str, Any],
        ttl: int | None = None,
    ) -> None:
        """Set session data."""
        ttl = ttl or config.session_ttl
        await self._redis.setex(
            self._key(session_id),
            ttl,
            json.dumps(data),
        )

    async def delete(self, session_id: str) -> None:
        """Delete session."""
        await self._redis.delete(self._key(session_id))


# Global session store instance
_session_store: SessionStore | None = None


async def get_session_store() -> SessionStore:
    """Get or create the session store."""
    global _session_store

    if _session_store is None:
        client = await get_redis()
        _session_store = RedisSessionStore(client) if client is not None else InMemorySessionStore()
    return _session_store


def reset_session_store() -> None:
    """Forget the session store so the next call reconnects."""
    global _session_store
    _session_store = None


async def create_session(data: dict[str, Any] | None = None) -> str:
    """Create a new session and return its signed token."""
    store = await get_session_store()
    session_id = store.create_session_id()
    await store.set(session_id, data or {})
    return get_session_signer().sign(session_id)


async def get_session(session_id: str) -> dict[str, Any] | None:
    """Get session data."""
    store = await get_session_store()
    return await store.get(session_id)


async def delete_session(session_id: str) -> None:
    """Delete a session."""
    store = await get_session_store()
    await store.delete(session_id)


def extract_session_id(token: str) -> str | None:
    """
    Extract the raw session ID from a signed token.

    Args:
        token: The signed session token

    Returns:
        The raw session ID if valid, None otherwise
    """
    signer = get_session_signer()
    return signer.unsign(token)


@dataclass(frozen=True)
class SessionContext:
    """The signed-in player behind a request."""

    session_id: str
    user_id: str
    email: str | None


# Called with the raw session ID when a genuine token turns out to be expired
_expiry_listeners: list[Callable[[str], None]] = []


def on_session_expired(listener: Callable[[str], None]) -> None:
    """Register a callback for expired sessions."""
    _expiry_listeners.append(listener)


class SessionError(Exception):
    """The token does not resolve to a signed-in player."""


async def resolve_session(session_token: str) -> SessionContext:
    """
    Resolve a signed token to the player behind it.

    Raises:
        SessionError: If the token is forged, expired or unknown
    """
    session_id = extract_session_id(session_token)
    if session_id is None:
        expired_id = get_session_signer().expired_session_id(session_token)
        if expired_id is not None:
            logger.info("Session %s expired", expired_id)
            for listener in _expiry_listeners:
                listener(expired_id)
            await delete_session(expired_id)
            raise SessionError("Session expired, please sign in again")
        raise SessionError("Invalid session")

    data = await get_session(session_id)
    if not data or SESSION_KEY_USER_ID not in data:
        raise SessionError("Session not found, please sign in")

    return SessionContext(
        session_id=session_id,
        user_id=data[SESSION_KEY_USER_ID],
        email=data.get(SESSION_KEY_EMAIL),
    )


async def require_session(
    session_token: Annotated[str, Header(alias="X-Session-ID")],
) -> SessionContext:
    """FastAPI dependency resolving the session header to a signed-in player."""
    try:
        return await resolve_session(session_token)
    except SessionError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
