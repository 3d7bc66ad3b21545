"""Tests for history statistics."""

from core.persistence import SettlementRecord
from core.statistics import HistoryStats, summarize_history


def record(result, bet):
    payout = {"win": bet * 2, "push": bet, "lose": 0}[result]
    return SettlementRecord(
        user_id="user-1",
        bet_amount=bet,
        player_hand=[10, 8],
        dealer_hand=[10, 7],
        player_total=18,
        dealer_total=17,
        result=result,
        payout=payout,
        balance_delta=payout - bet,
        new_balance=500,
    )


class TestSummarizeHistory:
    """Tests for summarize_history."""

    def test_empty(self):
        stats = summarize_history([])
        assert stats == HistoryStats()
        assert stats.win_rate == 0.0
        assert stats.net_result == 0

    def test_counts(self):
        stats = summarize_history(
            [record("win", 100), record("lose", 50), record("push", 25), record("win", 10)]
        )
        assert stats.total_games == 4
        assert stats.wins == 2
        assert stats.losses == 1
        assert stats.pushes == 1

    def test_money(self):
        stats = summarize_history([record("win", 100), record("lose", 50), record("push", 25)])
        assert stats.total_wagered == 175
        assert stats.total_winnings == 225
        assert stats.net_result == 50
        assert stats.biggest_win == 200

    def test_win_rate(self):
        stats = summarize_history([record("win", 10), record("lose", 10), record("lose", 10)])
        assert abs(stats.win_rate - 33.333) < 0.01

    def test_accepts_generator(self):
        stats = summarize_history(record("win", 5) for _ in range(3))
        assert stats.total_games == 3
