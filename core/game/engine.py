"""Round controller with state machine."""

import logging
from dataclasses import dataclass, field
from random import Random
from typing import Callable

from transitions import Machine

from core.betting import BetValidation, validate_bet
from core.cards import Rank, deal_initial_hands, draw
from core.game.events import EventEmitter, EventType, GameEvent
from core.game.state import GamePhase
from core.hand import (
    Outcome,
    dealer_should_hit,
    is_bust,
    payout,
    score,
    settle,
)
from core.persistence import STARTING_CHIPS, SettlementOutbox, SettlementRecord

logger = logging.getLogger(__name__)


@dataclass
class RoundState:
    """Cards, stake and result of the active round."""

    bet_amount: int = 0
    player_hand: list[Rank] = field(default_factory=list)
    dealer_hand: list[Rank] = field(default_factory=list)
    deck: list[Rank] = field(default_factory=list)
    result: Outcome | None = None
    payout: int = 0

    def reset(self) -> None:
        """Discard the round."""
        self.bet_amount = 0
        self.player_hand = []
        self.dealer_hand = []
        self.deck = []
        self.result = None
        self.payout = 0


class RoundController:
    """
    Single-player blackjack round using a state machine.

    This is the core game flow, completely UI-agnostic. Persistence is handed
    to an injected outbox; presentation listens to events.
    """

    # State machine states
    STATES = [
        {"name": "betting"},
        {"name": "playing"},
        {"name": "dealer"},
        {"name": "finished", "on_enter": "_on_round_finished"},
    ]

    # State machine transitions
    TRANSITIONS = [
        {"trigger": "start_round", "source": "betting", "dest": "playing"},
        {"trigger": "player_busts", "source": "playing", "dest": "finished"},
        {"trigger": "player_stands", "source": "playing", "dest": "dealer"},
        {"trigger": "dealer_finishes", "source": "dealer", "dest": "finished"},
        {"trigger": "reset_round", "source": "finished", "dest": "betting"},
    ]

    def __init__(
        self,
        balance: int = STARTING_CHIPS,
        outbox: SettlementOutbox | None = None,
        user_id: str | None = None,
        rng: Random | None = None,
    ) -> None:
        """
        Initialize a controller for one player session.

        Args:
            balance: Chips available to bet
            outbox: Receives a record for every settled round
            user_id: Signed-in user the records belong to
            rng: Random number generator for reproducible deals
        """
        if balance < 0:
            raise ValueError("balance cannot be negative")

        self.balance = balance
        self.user_id = user_id
        self.outbox = outbox
        self.round = RoundState()
        self.events = EventEmitter()
        self.last_record: SettlementRecord | None = None
        self._rng = rng or Random()

        # Initialize state machine
        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial="betting",
            auto_transitions=False,
            model_attribute="_machine_state",
        )

    @property
    def phase(self) -> GamePhase:
        """Get current phase as enum."""
        return GamePhase(self._machine_state)  # type: ignore[attr-defined]

    def subscribe(
        self,
        handler: Callable[[GameEvent], None],
        event_type: EventType | None = None,
    ) -> None:
        """Subscribe to round events."""
        self.events.subscribe(handler, event_type)

    # Session events

    def signed_in(self, user_id: str, balance: int) -> None:
        """Bind the session to a user and load their balance."""
        self.user_id = user_id
        if self.phase == GamePhase.BETTING:
            self.balance = balance
        self.events.emit_new(EventType.SIGNED_IN, user_id=user_id, balance=self.balance)

    def signed_out(self) -> None:
        """Unbind the user; later settlements are not persisted."""
        user_id, self.user_id = self.user_id, None
        self.events.emit_new(EventType.SIGNED_OUT, user_id=user_id)

    def session_expired(self) -> None:
        """Unbind the user after the identity provider dropped the session."""
        user_id, self.user_id = self.user_id, None
        self.events.emit_new(EventType.SESSION_EXPIRED, user_id=user_id)

    def add_chips(self, amount: int) -> bool:
        """Credit purchased chips. Only allowed between rounds."""
        if amount < 1 or not self.can_top_up:
            return False
        self.balance += amount
        return True

    # Player actions

    def place_bet(self, amount: int) -> BetValidation:
        """
        Place a bet and deal the opening cards.

        Args:
            amount: Bet amount

        Returns:
            The validation result; the round starts only when it is ok
        """
        if self.phase != GamePhase.BETTING:
            self.events.emit_new(
                EventType.INVALID_ACTION,
                message="Cannot bet in current phase",
                phase=self.phase.value,
            )
            return BetValidation(False, error="Cannot bet in current phase")

        validation = validate_bet(amount, self.balance)
        if not validation:
            event_type = (
                EventType.INSUFFICIENT_FUNDS
                if validation.insufficient_funds
                else EventType.INVALID_ACTION
            )
            self.events.emit_new(
                event_type,
                message=validation.error,
                available=self.balance,
            )
            return validation

        deal = deal_initial_hands(self._rng)
        self.round.reset()
        self.round.bet_amount = validation.amount
        self.round.deck = deal.deck
        self.round.player_hand = deal.player_hand
        self.round.dealer_hand = deal.dealer_hand

        self.events.emit_new(EventType.BET_PLACED, amount=validation.amount)
        self.start_round()  # Trigger state transition

        # Same order the cards came off the deck
        for index in range(2):
            self._card_dealt("player", self.round.player_hand[index])
            self._card_dealt("dealer", self.round.dealer_hand[index])

        self.events.emit_new(
            EventType.ROUND_STARTED,
            player_total=self.player_score,
            dealer_upcard=int(self.round.dealer_hand[0]),
        )
        return validation

    def hit(self) -> bool:
        """Player takes another card. A bust settles the round at once."""
        if not self.can_hit:
            self.events.emit_new(
                EventType.INVALID_ACTION,
                message="Cannot hit now",
                phase=self.phase.value,
            )
            return False

        card, self.round.deck = draw(self.round.deck)
        if card is None:
            logger.warning("Deck exhausted on hit")
            self.events.emit_new(EventType.DECK_EXHAUSTED, hand="player")
            return False

        self.round.player_hand.append(card)
        self._card_dealt("player", card)
        self.events.emit_new(EventType.PLAYER_HIT, hand_value=self.player_score)

        if is_bust(self.round.player_hand):
            self.events.emit_new(EventType.PLAYER_BUSTS, hand_value=self.player_score)
            self.round.result = Outcome.LOSE
            self.player_busts()

        return True

    def stand(self) -> bool:
        """Player stands; the dealer plays out and the round settles."""
        if not self.can_stand:
            self.events.emit_new(
                EventType.INVALID_ACTION,
                message="Cannot stand now",
                phase=self.phase.value,
            )
            return False

        self.events.emit_new(EventType.PLAYER_STAND, hand_value=self.player_score)
        self.player_stands()
        self._play_dealer()
        return True

    def new_round(self) -> bool:
        """Clear the finished round and return to betting."""
        if self.phase != GamePhase.FINISHED:
            return False

        self.round.reset()
        self.reset_round()
        self.events.emit_new(EventType.ROUND_RESET, balance=self.balance)
        return True

    # Internals

    def _card_dealt(self, hand: str, card: Rank) -> None:
        self.events.emit_new(EventType.CARD_DEALT, hand=hand, card=int(card))

    def _play_dealer(self) -> None:
        """Dealer draws until 17 or more, or until the deck runs out."""
        dealer_hand = self.round.dealer_hand

        while dealer_should_hit(dealer_hand):
            card, self.round.deck = draw(self.round.deck)
            if card is None:
                logger.warning("Deck exhausted during dealer play")
                self.events.emit_new(EventType.DECK_EXHAUSTED, hand="dealer")
                break
            dealer_hand.append(card)
            self._card_dealt("dealer", card)
            self.events.emit_new(EventType.DEALER_HITS, hand_value=score(dealer_hand))

        if is_bust(dealer_hand):
            self.events.emit_new(EventType.DEALER_BUSTS, hand_value=score(dealer_hand))
        else:
            self.events.emit_new(EventType.DEALER_STANDS, hand_value=score(dealer_hand))

        self.round.result = settle(self.round.player_hand, dealer_hand)
        self.dealer_finishes()

    def _on_round_finished(self) -> None:
        """Pay out, update the balance and queue the settlement record."""
        outcome = self.round.result
        if outcome is None:
            raise RuntimeError("Round finished without a result")

        bet = self.round.bet_amount
        self.round.payout = payout(outcome, bet)
        delta = self.round.payout - bet
        self.balance += delta

        record = SettlementRecord(
            user_id=self.user_id,
            bet_amount=bet,
            player_hand=[int(r) for r in self.round.player_hand],
            dealer_hand=[int(r) for r in self.round.dealer_hand],
            player_total=self.player_score,
            dealer_total=self.dealer_score,
            result=outcome.value,
            payout=self.round.payout,
            balance_delta=delta,
            new_balance=self.balance,
        )
        self.last_record = record

        self.events.emit_new(
            EventType.ROUND_SETTLED,
            result=outcome.value,
            payout=self.round.payout,
            balance_delta=delta,
            balance=self.balance,
        )
        logger.info(
            "Round settled for user %s: %s, bet %d, payout %d, balance %d",
            self.user_id,
            outcome.value,
            bet,
            self.round.payout,
            self.balance,
        )

        if self.outbox is not None:
            self.outbox.enqueue(record)

    # Read-only views

    @property
    def player_score(self) -> int:
        return score(self.round.player_hand)

    @property
    def dealer_score(self) -> int:
        return score(self.round.dealer_hand)

    @property
    def dealer_upcard(self) -> Rank | None:
        """The dealer's first card, shown to the player during play."""
        return self.round.dealer_hand[0] if self.round.dealer_hand else None

    @property
    def can_bet(self) -> bool:
        """Check if a new bet can be placed."""
        return self.phase == GamePhase.BETTING and self.balance >= 1

    @property
    def can_top_up(self) -> bool:
        return self.phase in (GamePhase.BETTING, GamePhase.FINISHED)

    @property
    def can_hit(self) -> bool:
        """Check if hitting is allowed."""
        return self.phase == GamePhase.PLAYING and not is_bust(self.round.player_hand)

    @property
    def can_stand(self) -> bool:
        """Check if standing is allowed."""
        return self.phase == GamePhase.PLAYING
