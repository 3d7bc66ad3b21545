"""Aggregate results over a player's game history."""

from dataclasses import dataclass
from typing import Iterable

from core.hand import Outcome
from core.persistence import SettlementRecord


@dataclass(frozen=True)
class HistoryStats:
    """Summary of settled rounds."""

    total_games: int = 0
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    total_wagered: int = 0
    total_winnings: int = 0
    biggest_win: int = 0

    @property
    def win_rate(self) -> float:
        """Percentage of rounds won (0-100)."""
        if self.total_games == 0:
            return 0.0
        return self.wins / self.total_games * 100

    @property
    def net_result(self) -> int:
        """Chips won minus chips staked."""
        return self.total_winnings - self.total_wagered


def summarize_history(records: Iterable[SettlementRecord]) -> HistoryStats:
    """
    Summarize settled rounds.

    ``total_winnings`` and ``biggest_win`` count payouts, so a returned stake
    on a push is included.
    """
    total = wins = losses = pushes = wagered = winnings = biggest = 0

    for record in records:
        total += 1
        if record.result == Outcome.WIN.value:
            wins += 1
        elif record.result == Outcome.LOSE.value:
            losses += 1
        else:
            pushes += 1
        wagered += record.bet_amount
        winnings += record.payout
        biggest = max(biggest, record.payout)

    return HistoryStats(
        total_games=total,
        wins=wins,
        losses=losses,
        pushes=pushes,
        total_wagered=wagered,
        total_winnings=winnings,
        biggest_win=biggest,
    )
