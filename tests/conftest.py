"""Pytest fixtures for blackjack table tests."""

import os

# Configuration is read once at import time
os.environ["REDIS_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DEALER_DRAW_DELAY"] = "0"
os.environ["OUTBOX_BASE_DELAY"] = "0"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from random import Random

from core.cards import Rank
from core.game import RoundController
from core.persistence import (
    InMemoryHistoryStore,
    InMemoryProfileStore,
    SettlementOutbox,
)


async def _no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return Random(42)


@pytest.fixture
def profiles():
    """Empty in-memory profile store."""
    return InMemoryProfileStore()


@pytest.fixture
def history():
    """Empty in-memory history store."""
    return InMemoryHistoryStore()


@pytest.fixture
def outbox():
    """Outbox that retries without waiting."""
    return SettlementOutbox(max_attempts=3, base_delay=0.5, sleep=_no_sleep)


@pytest.fixture
def controller(rng, outbox):
    """A signed-in controller with the starter balance."""
    c = RoundController(balance=500, outbox=outbox, rng=rng)
    c.signed_in("user-1", 500)
    return c


@pytest.fixture
def soft_17_hand():
    """A soft 17 hand (A-6)."""
    return [Rank.ACE, Rank.SIX]


@pytest.fixture
def hard_16_hand():
    """A hard 16 hand (10-6)."""
    return [Rank.TEN, Rank.SIX]


@pytest.fixture
def natural_hand():
    """A natural (A-K)."""
    return [Rank.ACE, Rank.KING]


@pytest.fixture
def bust_hand():
    """A busted hand."""
    return [Rank.TEN, Rank.SIX, Rank.KING]


@pytest.fixture(autouse=True)
def reset_api_state():
    """Fresh stores, sessions and controllers for every test."""
    from api.routes.game import clear_controllers
    from api.session import reset_session_store
    from api.store import reset_stores

    reset_stores()
    reset_session_store()
    clear_controllers()
    yield
    reset_stores()
    reset_session_store()
    clear_controllers()


@pytest.fixture
def rig():
    """Replace the dealt cards of a round that has just started."""

    def _rig(controller, player_hand, dealer_hand, deck=()):
        controller.round.player_hand = [Rank(r) for r in player_hand]
        controller.round.dealer_hand = [Rank(r) for r in dealer_hand]
        controller.round.deck = [Rank(r) for r in deck]

    return _rig
