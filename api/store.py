"""Profile and history stores with Redis backend and in-memory fallback."""

import json
from datetime import datetime, timezone

import redis.asyncio as redis
from redis.exceptions import RedisError

from api.logging_utils import get_logger
from config import config
from core.persistence import (
    HistoryStore,
    InMemoryHistoryStore,
    InMemoryProfileStore,
    Profile,
    ProfileStore,
    SettlementOutbox,
    SettlementRecord,
)

logger = get_logger(__name__)

KEY_PREFIX = "blackjack"


class RedisProfileStore(ProfileStore):
    """Redis-backed profile store, one JSON document per user."""

    def __init__(self, redis_client: "redis.Redis", starting_chips: int | None = None) -> None:
        self._redis = redis_client
        self._prefix = f"{KEY_PREFIX}:profile:"
        self._starting_chips = (
            starting_chips if starting_chips is not None else config.game.starting_chips
        )

    def _key(self, user_id: str) -> str:
        """Get Redis key for a profile."""
        return f"{self._prefix}{user_id}"

    async def get_profile(self, user_id: str) -> Profile | None:
        data = await self._redis.get(self._key(user_id))
        if data is None:
            return None
        return Profile.from_dict(json.loads(data))

    async def ensure_profile(self, user_id: str, email: str | None) -> Profile:
        starter = Profile(user_id=user_id, email=email, chips=self._starting_chips)
        # NX keeps an existing profile untouched
        created = await self._redis.set(
            self._key(user_id), json.dumps(starter.to_dict()), nx=True
        )
        if created:
            logger.info("Created starter profile for user %s", user_id)
            return starter
        profile = await self.get_profile(user_id)
        return profile if profile is not None else starter

    async def update_balance(self, user_id: str, new_balance: int) -> bool:
        profile = await self.get_profile(user_id)
        if profile is None:
            logger.error("update_balance: no profile for user %s", user_id)
            return False
        profile.chips = new_balance
        profile.updated_at = datetime.now(timezone.utc)
        await self._redis.set(self._key(user_id), json.dumps(profile.to_dict()))
        return True


class RedisHistoryStore(HistoryStore):
    """Redis-backed game history, newest record at the head of a list."""

    def __init__(self, redis_client: "redis.Redis") -> None:
        self._redis = redis_client
        self._prefix = f"{KEY_PREFIX}:history:"

    def _key(self, user_id: str) -> str:
        """Get Redis key for a user's history."""
        return f"{self._prefix}{user_id}"

    async def append(self, record: SettlementRecord) -> bool:
        if record.user_id is None:
            return False
        try:
            await self._redis.lpush(self._key(record.user_id), json.dumps(record.to_dict()))
        except RedisError:
            logger.exception("History append failed for user %s", record.user_id)
            return False
        return True

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[SettlementRecord]:
        if limit <= 0:
            return []
        rows = await self._redis.lrange(self._key(user_id), 0, limit - 1)
        return [SettlementRecord.from_dict(json.loads(row)) for row in rows]


# Global instances, created on first use
_redis_client: "redis.Redis | None" = None
_redis_checked = False
_profile_store: ProfileStore | None = None
_history_store: HistoryStore | None = None
_outbox: SettlementOutbox | None = None


async def get_redis() -> "redis.Redis | None":
    """Connect to Redis once; None when disabled or unreachable."""
    global _redis_client, _redis_checked

    if _redis_checked:
        return _redis_client
    _redis_checked = True

    if not config.redis.enabled:
        logger.info("Redis disabled, using in-memory stores")
        return None

    client = redis.from_url(config.redis.url)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning(
            "Redis unavailable at %s:%d (%s), using in-memory stores",
            config.redis.host,
            config.redis.port,
            exc,
        )
        return None

    _redis_client = client
    return _redis_client


async def get_profile_store() -> ProfileStore:
    """Get or create the profile store."""
    global _profile_store

    if _profile_store is None:
        client = await get_redis()
        if client is not None:
            _profile_store = RedisProfileStore(client)
        else:
            _profile_store = InMemoryProfileStore(config.game.starting_chips)
    return _profile_store


async def get_history_store() -> HistoryStore:
    """Get or create the history store."""
    global _history_store

    if _history_store is None:
        client = await get_redis()
        _history_store = RedisHistoryStore(client) if client is not None else InMemoryHistoryStore()
    return _history_store


def get_outbox() -> SettlementOutbox:
    """Get or create the settlement outbox."""
    global _outbox

    if _outbox is None:
        _outbox = SettlementOutbox(
            max_attempts=config.outbox.max_attempts,
            base_delay=config.outbox.base_delay,
        )
    return _outbox


def reset_stores() -> None:
    """Forget every store instance so the next call reconnects."""
    global _redis_client, _redis_checked, _profile_store, _history_store, _outbox
    _redis_client = None
    _redis_checked = False
    _profile_store = None
    _history_store = None
    _outbox = None
