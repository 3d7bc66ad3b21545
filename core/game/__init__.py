"""Round controller and state management."""

from core.game.events import GameEvent, EventType
from core.game.state import GamePhase
from core.game.engine import RoundController

__all__ = [
    "GameEvent",
    "EventType",
    "GamePhase",
    "RoundController",
]
