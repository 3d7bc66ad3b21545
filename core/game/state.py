"""Round phase enumeration."""

from enum import Enum


class GamePhase(Enum):
    """
    Round state machine phases.

    Flow: BETTING → PLAYING → DEALER → FINISHED → BETTING
    A player bust goes straight from PLAYING to FINISHED.
    """

    # Waiting for a bet
    BETTING = "betting"

    # Player hits or stands
    PLAYING = "playing"

    # Dealer draws to 17
    DEALER = "dealer"

    # Round settled, ready for next
    FINISHED = "finished"

    def __str__(self) -> str:
        return self.value

