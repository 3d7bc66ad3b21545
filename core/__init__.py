"""Core blackjack engine - 100% UI-agnostic."""

from core.cards import Rank, Suit, create_deck, deal_initial_hands, draw, shuffle
from core.hand import (
    Outcome,
    card_value,
    dealer_should_hit,
    is_bust,
    is_natural,
    is_soft,
    payout,
    score,
    settle,
)
from core.betting import BetValidation, validate_bet

__all__ = [
    "Rank",
    "Suit",
    "create_deck",
    "shuffle",
    "deal_initial_hands",
    "draw",
    "Outcome",
    "card_value",
    "score",
    "is_bust",
    "is_natural",
    "is_soft",
    "dealer_should_hit",
    "settle",
    "payout",
    "BetValidation",
    "validate_bet",
]
