"""Bet validation shared by every input path."""

import math
from dataclasses import dataclass

QUICK_BETS: tuple[int, ...] = (10, 25, 50, 100, 250, 500)
MIN_BET = 1


@dataclass(frozen=True)
class BetValidation:
    """Outcome of checking a bet against the available balance."""

    ok: bool
    amount: int = 0
    error: str | None = None
    insufficient_funds: bool = False

    def __bool__(self) -> bool:
        return self.ok


def validate_bet(amount: object, balance: int) -> BetValidation:
    """
    Check a requested bet.

    Args:
        amount: Requested bet, must be a whole number of chips
        balance: Chips currently available

    Returns:
        A BetValidation; ``ok`` is False with a message when rejected
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return BetValidation(False, error="Bet must be a whole number of chips")
    if isinstance(amount, float):
        if not math.isfinite(amount) or not amount.is_integer():
            return BetValidation(False, error="Bet must be a whole number of chips")
        amount = int(amount)

    if balance <= 0:
        return BetValidation(
            False,
            amount=amount,
            error="No chips available",
            insufficient_funds=True,
        )
    if amount < MIN_BET:
        return BetValidation(False, amount=amount, error=f"Bet must be at least {MIN_BET}")
    if amount > balance:
        return BetValidation(
            False,
            amount=amount,
            error=f"Bet must be between {MIN_BET} and {balance}",
            insufficient_funds=True,
        )
    return BetValidation(True, amount=amount)


def clamp_bet(amount: float, balance: int) -> int:
    """Floor a bet and clamp it into the range the balance allows."""
    if not math.isfinite(amount):
        return MIN_BET
    return max(MIN_BET, min(max(MIN_BET, balance), math.floor(amount)))


def available_quick_bets(balance: int) -> list[int]:
    """Quick-bet presets the balance can cover."""
    return [bet for bet in QUICK_BETS if bet <= balance]
