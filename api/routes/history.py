"""Game history endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from api.dependencies import CurrentSession, History
from api.schemas import HistoryEntry, HistoryResponse, HistoryStatsResponse
from config import config
from core.statistics import summarize_history

router = APIRouter()

Limit = Annotated[int, Query(ge=1, le=500)]


@router.get("")
async def list_history(
    session: CurrentSession,
    history: History,
    limit: Limit = config.game.history_limit,
) -> HistoryResponse:
    """The player's recent rounds, newest first."""
    records = await history.list_for_user(session.user_id, limit=limit)
    return HistoryResponse(
        games=[
            HistoryEntry(
                bet_amount=r.bet_amount,
                player_hand=r.player_hand,
                dealer_hand=r.dealer_hand,
                player_total=r.player_total,
                dealer_total=r.dealer_total,
                result=r.result,
                payout=r.payout,
                balance_delta=r.balance_delta,
                timestamp=r.timestamp,
            )
            for r in records
        ]
    )


@router.get("/stats")
async def history_stats(
    session: CurrentSession,
    history: History,
    limit: Limit = config.game.history_limit,
) -> HistoryStatsResponse:
    """Win/loss summary over the player's recent rounds."""
    records = await history.list_for_user(session.user_id, limit=limit)
    stats = summarize_history(records)
    return HistoryStatsResponse(
        total_games=stats.total_games,
        wins=stats.wins,
        losses=stats.losses,
        pushes=stats.pushes,
        win_rate=round(stats.win_rate, 1),
        total_wagered=stats.total_wagered,
        total_winnings=stats.total_winnings,
        net_result=stats.net_result,
        biggest_win=stats.biggest_win,
    )
