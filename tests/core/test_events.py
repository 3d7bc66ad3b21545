"""Tests for the event emitter."""

from core.game.events import EventEmitter, EventType, GameEvent


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_catch_all_handler(self):
        emitter = EventEmitter()
        seen = []
        emitter.subscribe(seen.append)

        emitter.emit_new(EventType.BET_PLACED, amount=10)
        emitter.emit_new(EventType.PLAYER_HIT, hand_value=15)

        assert [e.event_type for e in seen] == [EventType.BET_PLACED, EventType.PLAYER_HIT]
        assert seen[0].data == {"amount": 10}

    def test_typed_handler(self):
        emitter = EventEmitter()
        seen = []
        emitter.subscribe(seen.append, EventType.ROUND_SETTLED)

        emitter.emit_new(EventType.BET_PLACED, amount=10)
        emitter.emit_new(EventType.ROUND_SETTLED, result="win")

        assert len(seen) == 1
        assert seen[0].data["result"] == "win"

    def test_typed_handlers_run_before_catch_all(self):
        emitter = EventEmitter()
        order = []
        emitter.subscribe(lambda e: order.append("all"))
        emitter.subscribe(lambda e: order.append("typed"), EventType.CARD_DEALT)

        emitter.emit_new(EventType.CARD_DEALT, hand="player", card=5)

        assert order == ["typed", "all"]

    def test_unsubscribe(self):
        emitter = EventEmitter()
        seen = []
        emitter.subscribe(seen.append)
        emitter.unsubscribe(seen.append)

        emitter.emit_new(EventType.ROUND_RESET)

        assert seen == []

    def test_unsubscribe_unknown_handler_ignored(self):
        EventEmitter().unsubscribe(print, EventType.ROUND_RESET)

    def test_history(self):
        emitter = EventEmitter()
        emitter.emit(GameEvent(EventType.SIGNED_IN, {"user_id": "u"}))

        assert len(emitter.history) == 1
        emitter.clear_history()
        assert emitter.history == []

    def test_str(self):
        event = GameEvent(EventType.PLAYER_BUSTS, {"hand_value": 25})
        assert str(event) == "PLAYER_BUSTS: {'hand_value': 25}"
