"""Profile and history store interfaces plus the settlement outbox."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

STARTING_CHIPS = 500


@dataclass(frozen=True)
class SettlementRecord:
    """One settled round, as written to the game history."""

    user_id: str | None
    bet_amount: int
    player_hand: list[int]
    dealer_hand: list[int]
    player_total: int
    dealer_total: int
    result: str
    payout: int
    balance_delta: int
    new_balance: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain JSON-friendly types."""
        data = asdict(self)
        data["player_hand"] = [int(r) for r in self.player_hand]
        data["dealer_hand"] = [int(r) for r in self.dealer_hand]
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SettlementRecord":
        """Rebuild a record written by ``to_dict``."""
        return cls(
            user_id=data.get("user_id"),
            bet_amount=data["bet_amount"],
            player_hand=list(data["player_hand"]),
            dealer_hand=list(data["dealer_hand"]),
            player_total=data["player_total"],
            dealer_total=data["dealer_total"],
            result=data["result"],
            payout=data["payout"],
            balance_delta=data["balance_delta"],
            new_balance=data["new_balance"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class Profile:
    """A player's profile row."""

    user_id: str
    email: str | None
    chips: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "chips": self.chips,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        return cls(
            user_id=data["user_id"],
            email=data.get("email"),
            chips=data["chips"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


class ProfileStore(ABC):
    """Abstract profile store keyed by user id."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile | None:
        """Get a profile, or None if the user has none."""
        ...

    @abstractmethod
    async def ensure_profile(self, user_id: str, email: str | None) -> Profile:
        """Return the user's profile, creating a starter one if missing."""
        ...

    @abstractmethod
    async def update_balance(self, user_id: str, new_balance: int) -> bool:
        """Write a new chip balance.

        Returns False when the user has no profile. Store outages raise.
        """
        ...


class HistoryStore(ABC):
    """Abstract append-only game history."""

    @abstractmethod
    async def append(self, record: SettlementRecord) -> bool:
        """Append a settled round. Returns False on failure."""
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 50) -> list[SettlementRecord]:
        """Return the user's rounds, newest first."""
        ...


class InMemoryProfileStore(ProfileStore):
    """In-memory profile store for local development."""

    def __init__(self, starting_chips: int = STARTING_CHIPS) -> None:
        self._profiles: dict[str, Profile] = {}
        self._starting_chips = starting_chips

    async def get_profile(self, user_id: str) -> Profile | None:
        return self._profiles.get(user_id)

    async def ensure_profile(self, user_id: str, email: str | None) -> Profile:
        profile = self._profiles.get(user_id)
        if profile is None:
            profile = Profile(user_id=user_id, email=email, chips=self._starting_chips)
            self._profiles[user_id] = profile
        return profile

    async def update_balance(self, user_id: str, new_balance: int) -> bool:
        profile = self._profiles.get(user_id)
        if profile is None:
            logger.error("update_balance: no profile for user %s", user_id)
            return False
        profile.chips = new_balance
        profile.updated_at = datetime.now(timezone.utc)
        return True


class InMemoryHistoryStore(HistoryStore):
    """In-memory game history for local development."""

    def __init__(self) -> None:
        self._records: dict[str, list[SettlementRecord]] = {}

    async def append(self, record: SettlementRecord) -> bool:
        if record.user_id is None:
            return False
        self._records.setdefault(record.user_id, []).append(record)
        return True

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[SettlementRecord]:
        records = self._records.get(user_id, [])
        return list(reversed(records))[:limit]


@dataclass
class FlushResult:
    """Summary of one outbox flush."""

    records_written: int = 0
    records_dropped: int = 0
    balances_written: int = 0
    balances_dropped: int = 0
    balances_pending: int = 0


class BalanceWrite(Enum):
    """Outcome of writing one balance."""

    WRITTEN = "written"
    REJECTED = "rejected"
    FAILED = "failed"


class SettlementOutbox:
    """
    Queue between round settlement and the external stores.

    Settlement only enqueues, so it always succeeds locally. ``flush`` delivers
    history records once each (failures are logged and dropped) and writes
    the latest balance per user with exponential backoff. Balances whose
    writes keep raising stay queued for the next flush. A balance the store
    rejects outright (no profile for the user) is logged and dropped.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the outbox.

        Args:
            max_attempts: Balance write attempts per flush
            base_delay: Delay before the first retry, doubled on each retry
            sleep: Awaitable sleep, replaceable in tests
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep
        self._records: deque[SettlementRecord] = deque()
        self._balances: dict[str, int] = {}
        self._lock = asyncio.Lock()

    def enqueue(self, record: SettlementRecord) -> None:
        """Queue a settled round for delivery."""
        if record.user_id is None:
            logger.debug("Skipping settlement with no signed-in user")
            return
        self._records.append(record)
        self._balances[record.user_id] = record.new_balance

    @property
    def pending_records(self) -> int:
        """Number of history records awaiting delivery."""
        return len(self._records)

    @property
    def pending_balances(self) -> dict[str, int]:
        """Balances awaiting a successful write, by user id."""
        return dict(self._balances)

    async def flush(self, profiles: ProfileStore, history: HistoryStore) -> FlushResult:
        """Deliver everything queued. Never raises on store failures."""
        async with self._lock:
            result = FlushResult()

            while self._records:
                record = self._records.popleft()
                if await self._append_record(history, record):
                    result.records_written += 1
                else:
                    result.records_dropped += 1
                    logger.warning(
                        "Dropped history record for user %s (%s, bet %d)",
                        record.user_id,
                        record.result,
                        record.bet_amount,
                    )

            for user_id, balance in list(self._balances.items()):
                outcome = await self._write_balance(profiles, user_id, balance)
                if outcome is BalanceWrite.FAILED:
                    continue
                if outcome is BalanceWrite.WRITTEN:
                    result.balances_written += 1
                else:
                    result.balances_dropped += 1
                    logger.error(
                        "Dropped balance %d for user %s: store rejected the write",
                        balance,
                        user_id,
                    )
                # A newer settlement may have queued another balance meanwhile
                if self._balances.get(user_id) == balance:
                    del self._balances[user_id]

            result.balances_pending = len(self._balances)
            if result.balances_pending:
                logger.error(
                    "%d balance update(s) still pending after %d attempts",
                    result.balances_pending,
                    self._max_attempts,
                )
            return result

    async def _append_record(self, history: HistoryStore, record: SettlementRecord) -> bool:
        try:
            return await history.append(record)
        except Exception:
            logger.exception("History write failed for user %s", record.user_id)
            return False

    async def _write_balance(
        self, profiles: ProfileStore, user_id: str, balance: int
    ) -> BalanceWrite:
        for attempt in range(self._max_attempts):
            try:
                if await profiles.update_balance(user_id, balance):
                    return BalanceWrite.WRITTEN
                return BalanceWrite.REJECTED
            except Exception:
                logger.warning(
                    "Balance write for user %s failed (attempt %d/%d)",
                    user_id,
                    attempt + 1,
                    self._max_attempts,
                    exc_info=True,
                )
            if attempt + 1 < self._max_attempts:
                await self._sleep(self._base_delay * 2**attempt)
        return BalanceWrite.FAILED
