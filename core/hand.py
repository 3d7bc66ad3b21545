"""Hand evaluation and round settlement for blackjack."""

from enum import Enum
from typing import Sequence

from core.cards import rank_label

BLACKJACK = 21
DEALER_STANDS_ON = 17

# A hand is any ordered run of ranks 1-13
Hand = Sequence[int]


class Outcome(str, Enum):
    """Result of a settled round from the player's side."""

    WIN = "win"
    LOSE = "lose"
    PUSH = "push"

    def __str__(self) -> str:
        return self.value


def card_value(rank: int) -> int:
    """Return the provisional point value (Ace = 11, face cards = 10)."""
    if rank == 1:
        return 11
    if rank >= 11:
        return 10
    return rank


def _total_and_soft_aces(hand: Hand) -> tuple[int, int]:
    """Best total and the number of Aces still counted as 11."""
    total = 0
    aces = 0

    for rank in hand:
        if rank == 1:
            aces += 1
        total += card_value(rank)

    # Reduce aces from 11 to 1 as needed
    while total > BLACKJACK and aces > 0:
        total -= 10
        aces -= 1

    return total, aces


def score(hand: Hand) -> int:
    """
    Calculate the best hand value.

    Returns the highest value that doesn't bust, or the lowest bust value.
    """
    return _total_and_soft_aces(hand)[0]


def is_soft(hand: Hand) -> bool:
    """Check if the hand holds an Ace still counted as 11."""
    return _total_and_soft_aces(hand)[1] > 0


def is_bust(hand: Hand) -> bool:
    """Check if the hand has busted (value > 21)."""
    return score(hand) > BLACKJACK


def is_natural(hand: Hand) -> bool:
    """Check if the hand is a natural blackjack (21 with 2 cards)."""
    return len(hand) == 2 and score(hand) == BLACKJACK


def dealer_should_hit(hand: Hand) -> bool:
    """Dealer hits on 16 or less and stands on any 17, soft or hard."""
    return score(hand) < DEALER_STANDS_ON


def settle(player_hand: Hand, dealer_hand: Hand) -> Outcome:
    """
    Compare player and dealer hands.

    A player bust loses even when the dealer also busts.
    """
    if is_bust(player_hand):
        return Outcome.LOSE

    if is_bust(dealer_hand):
        return Outcome.WIN

    player_value = score(player_hand)
    dealer_value = score(dealer_hand)

    if player_value > dealer_value:
        return Outcome.WIN
    if player_value < dealer_value:
        return Outcome.LOSE
    return Outcome.PUSH


def payout(outcome: Outcome | str, bet: int) -> int:
    """
    Chips returned to the player for a settled bet.

    Win returns the stake plus equal winnings, push returns the stake and a
    loss returns nothing. Naturals are paid like any other win.
    """
    outcome = Outcome(outcome)
    if outcome is Outcome.WIN:
        return bet * 2
    if outcome is Outcome.PUSH:
        return bet
    return 0


def format_hand(hand: Hand) -> str:
    """Human-readable hand such as ``A 5 (soft 16)``."""
    cards_str = " ".join(rank_label(rank) for rank in hand)
    value = score(hand)
    if is_natural(hand):
        value_str = "(BLACKJACK)"
    elif value > BLACKJACK:
        value_str = "(BUST)"
    elif is_soft(hand):
        value_str = f"(soft {value})"
    else:
        value_str = f"({value})"
    return f"{cards_str} {value_str}".strip()
