"""Tests for the round controller."""

from random import Random

import pytest
from hypothesis import given, settings, strategies as st
from transitions import MachineError

from core.cards import Rank
from core.game import EventType, GamePhase, RoundController
from core.hand import Outcome


class TestGamePhase:
    """Tests for phase transitions."""

    @staticmethod
    def destinations(controller, phase):
        transitions = controller.machine.get_transitions(source=phase.value)
        return {GamePhase(t.dest) for t in transitions}

    def test_valid_transitions(self, controller):
        assert self.destinations(controller, GamePhase.BETTING) == {GamePhase.PLAYING}
        assert self.destinations(controller, GamePhase.PLAYING) == {
            GamePhase.DEALER,
            GamePhase.FINISHED,
        }
        assert self.destinations(controller, GamePhase.DEALER) == {GamePhase.FINISHED}
        assert self.destinations(controller, GamePhase.FINISHED) == {GamePhase.BETTING}

    def test_invalid_trigger_raises(self, controller):
        with pytest.raises(MachineError):
            controller.reset_round()
        with pytest.raises(MachineError):
            controller.player_stands()
        assert controller.phase == GamePhase.BETTING


class TestRoundController:
    """Tests for RoundController."""

    def test_initial_state(self, controller):
        """Test controller starts ready for a bet."""
        assert controller.phase == GamePhase.BETTING
        assert controller.balance == 500
        assert controller.user_id == "user-1"
        assert controller.can_bet
        assert not controller.can_hit
        assert not controller.can_stand

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            RoundController(balance=-1)

    def test_zero_balance_cannot_bet(self, outbox):
        controller = RoundController(balance=0, outbox=outbox)
        assert not controller.can_bet

        result = controller.place_bet(10)

        assert not result
        assert result.insufficient_funds
        assert controller.phase == GamePhase.BETTING

    def test_place_bet_deals(self, controller):
        """Test placing a bet deals two cards each and starts play."""
        result = controller.place_bet(100)

        assert result
        assert controller.phase == GamePhase.PLAYING
        assert controller.round.bet_amount == 100
        assert len(controller.round.player_hand) == 2
        assert len(controller.round.dealer_hand) == 2
        assert len(controller.round.deck) == 48
        # Stake is only settled when the round ends
        assert controller.balance == 500

    def test_invalid_bet_keeps_betting(self, controller):
        result = controller.place_bet(501)

        assert not result
        assert result.error == "Bet must be between 1 and 500"
        assert controller.phase == GamePhase.BETTING
        assert controller.round.player_hand == []

    def test_bet_not_allowed_during_play(self, controller):
        controller.place_bet(10)

        result = controller.place_bet(10)

        assert not result
        assert controller.phase == GamePhase.PLAYING

    def test_actions_rejected_outside_play(self, controller):
        """Hit and stand are no-ops while betting."""
        assert not controller.hit()
        assert not controller.stand()
        assert not controller.new_round()
        assert controller.phase == GamePhase.BETTING

        types = [e.event_type for e in controller.events.history]
        assert types.count(EventType.INVALID_ACTION) == 2

    def test_player_bust(self, controller, rig):
        """Player busts: round settles at once and the dealer never draws."""
        controller.place_bet(100)
        rig(controller, [10, 10], [6, 10], [9, 5])

        assert controller.hit()

        assert controller.phase == GamePhase.FINISHED
        assert controller.round.result == Outcome.LOSE
        assert controller.round.payout == 0
        assert controller.balance == 400
        assert controller.round.player_hand == [10, 10, 5]
        assert controller.round.dealer_hand == [6, 10]
        assert controller.round.deck == [9]
        assert not controller.can_hit

    def test_hit_without_bust_keeps_playing(self, controller, rig):
        controller.place_bet(100)
        rig(controller, [2, 3], [10, 7], [4])

        assert controller.hit()

        assert controller.phase == GamePhase.PLAYING
        assert controller.player_score == 9
        assert controller.round.deck == []

    def test_stand_dealer_draws_to_seventeen(self, controller, rig):
        """Dealer on 16 draws an Ace to reach 17 and stands."""
        controller.place_bet(100)
        rig(controller, [10, 9], [6, 10], [2, 1])

        assert controller.stand()

        assert controller.phase == GamePhase.FINISHED
        assert controller.round.dealer_hand == [6, 10, 1]
        assert controller.dealer_score == 17
        assert controller.round.result == Outcome.WIN
        assert controller.round.payout == 200
        assert controller.balance == 600

    def test_dealer_stands_on_soft_seventeen(self, controller, rig):
        controller.place_bet(50)
        rig(controller, [10, 7], [1, 6], [10])

        controller.stand()

        assert controller.round.dealer_hand == [1, 6]
        assert controller.round.result == Outcome.PUSH
        assert controller.balance == 500

    def test_dealer_bust(self, controller, rig):
        controller.place_bet(50)
        rig(controller, [10, 2], [10, 6], [13])

        controller.stand()

        assert controller.round.result == Outcome.WIN
        assert controller.dealer_score == 26
        assert controller.balance == 550
        types = [e.event_type for e in controller.events.history]
        assert EventType.DEALER_BUSTS in types

    def test_natural_pays_like_any_win(self, controller, rig):
        controller.place_bet(100)
        rig(controller, [1, 13], [10, 8], [])

        controller.stand()

        assert controller.round.result == Outcome.WIN
        assert controller.round.payout == 200

    def test_hit_on_empty_deck(self, controller, rig):
        """An exhausted deck leaves the round playing."""
        controller.place_bet(100)
        rig(controller, [2, 3], [10, 7], [])

        assert not controller.hit()

        assert controller.phase == GamePhase.PLAYING
        assert controller.round.player_hand == [2, 3]
        types = [e.event_type for e in controller.events.history]
        assert EventType.DECK_EXHAUSTED in types

    def test_dealer_stops_on_empty_deck(self, controller, rig):
        """The dealer settles with whatever it holds when the deck runs out."""
        controller.place_bet(100)
        rig(controller, [10, 9], [2, 3], [])

        controller.stand()

        assert controller.phase == GamePhase.FINISHED
        assert controller.round.dealer_hand == [2, 3]
        assert controller.round.result == Outcome.WIN

    def test_new_round(self, controller, rig):
        controller.place_bet(100)
        rig(controller, [10, 10], [6, 10], [5])
        controller.hit()

        assert controller.new_round()

        assert controller.phase == GamePhase.BETTING
        assert controller.round.player_hand == []
        assert controller.round.result is None
        assert controller.balance == 400

    def test_new_round_rejected_during_play(self, controller):
        controller.place_bet(10)
        assert not controller.new_round()
        assert controller.phase == GamePhase.PLAYING

    def test_event_order_on_deal(self, controller):
        """Cards are announced in the order they came off the deck."""
        controller.events.clear_history()
        controller.place_bet(10)

        events = controller.events.history
        types = [e.event_type for e in events]
        assert types == [
            EventType.BET_PLACED,
            EventType.CARD_DEALT,
            EventType.CARD_DEALT,
            EventType.CARD_DEALT,
            EventType.CARD_DEALT,
            EventType.ROUND_STARTED,
        ]
        hands = [e.data["hand"] for e in events if e.event_type == EventType.CARD_DEALT]
        assert hands == ["player", "dealer", "player", "dealer"]

    def test_subscribe(self, controller, rig):
        seen = []
        controller.subscribe(seen.append, EventType.ROUND_SETTLED)

        controller.place_bet(100)
        rig(controller, [10, 10], [6, 10], [5])
        controller.hit()

        assert len(seen) == 1
        assert seen[0].data["result"] == "lose"
        assert seen[0].data["balance_delta"] == -100
        assert seen[0].data["balance"] == 400


class TestSettlementRecords:
    """Tests for what the controller hands to the outbox."""

    def test_record_enqueued(self, controller, outbox, rig):
        controller.place_bet(100)
        rig(controller, [10, 9], [6, 10], [1])
        controller.stand()

        assert outbox.pending_records == 1
        assert outbox.pending_balances == {"user-1": 600}

        record = controller.last_record
        assert record.user_id == "user-1"
        assert record.bet_amount == 100
        assert record.player_hand == [10, 9]
        assert record.dealer_hand == [6, 10, 1]
        assert record.player_total == 19
        assert record.dealer_total == 17
        assert record.result == "win"
        assert record.payout == 200
        assert record.balance_delta == 100
        assert record.new_balance == 600

    def test_latest_balance_wins(self, controller, outbox, rig):
        for _ in range(2):
            controller.place_bet(100)
            rig(controller, [10, 10], [6, 10], [5])
            controller.hit()
            controller.new_round()

        assert outbox.pending_records == 2
        assert outbox.pending_balances == {"user-1": 300}

    def test_anonymous_rounds_not_persisted(self, outbox, rng, rig):
        controller = RoundController(balance=500, outbox=outbox, rng=rng)
        controller.place_bet(100)
        rig(controller, [10, 10], [6, 10], [5])
        controller.hit()

        assert controller.last_record is not None
        assert outbox.pending_records == 0


class TestSessionEvents:
    """Tests for sign-in, sign-out and expiry."""

    def test_signed_in_loads_balance(self, outbox):
        controller = RoundController(balance=0, outbox=outbox)
        controller.signed_in("user-2", 750)

        assert controller.user_id == "user-2"
        assert controller.balance == 750

    def test_signed_in_mid_round_keeps_balance(self, controller):
        controller.place_bet(100)
        controller.signed_in("user-1", 9999)

        assert controller.balance == 500
        assert controller.phase == GamePhase.PLAYING

    def test_signed_out_unbinds_user(self, controller):
        controller.place_bet(10)
        controller.signed_out()

        assert controller.user_id is None
        assert controller.phase == GamePhase.PLAYING
        types = [e.event_type for e in controller.events.history]
        assert EventType.SIGNED_OUT in types

    def test_session_expired(self, controller):
        controller.session_expired()

        assert controller.user_id is None
        assert controller.events.history[-1].event_type == EventType.SESSION_EXPIRED


class TestAddChips:
    """Tests for add_chips."""

    def test_add_between_rounds(self, controller):
        assert controller.add_chips(250)
        assert controller.balance == 750

    def test_rejected_during_play(self, controller):
        controller.place_bet(10)
        assert not controller.add_chips(250)
        assert controller.balance == 500

    def test_rejects_non_positive(self, controller):
        assert not controller.add_chips(0)
        assert controller.balance == 500


@settings(max_examples=50, deadline=None)
@given(
    seed=st.integers(min_value=0, max_value=100_000),
    bet=st.integers(min_value=1, max_value=500),
    hits=st.integers(min_value=0, max_value=5),
)
def test_balance_accounting(seed, bet, hits):
    """Property: a settled round moves the balance by payout minus bet."""
    controller = RoundController(balance=500, rng=Random(seed))
    controller.place_bet(bet)

    for _ in range(hits):
        if not controller.can_hit:
            break
        controller.hit()
    if controller.can_stand:
        controller.stand()

    assert controller.phase == GamePhase.FINISHED
    assert controller.balance == 500 - bet + controller.round.payout
    assert controller.balance >= 0
    assert controller.round.payout in (0, bet, 2 * bet)
    total_cards = (
        len(controller.round.deck)
        + len(controller.round.player_hand)
        + len(controller.round.dealer_hand)
    )
    assert total_cards == 52
    assert all(isinstance(card, Rank) for card in controller.round.player_hand)
