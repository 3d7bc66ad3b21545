"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# Auth schemas
class SignInRequest(BaseModel):
    """Request to sign in."""

    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")


class SignInResponse(BaseModel):
    """Signed-in session."""

    session_id: str
    user_id: str
    email: str | None
    chips: int


class MeResponse(BaseModel):
    """The player behind the session."""

    user_id: str
    email: str | None
    chips: int


# Game schemas
class BetRequest(BaseModel):
    """Request to place a bet."""

    amount: int = Field(..., description="Bet amount in chips")


class ActionRequest(BaseModel):
    """Request for player action."""

    action: Literal["hit", "stand"]


class CardResponse(BaseModel):
    """Card representation."""

    model_config = ConfigDict(from_attributes=True)

    rank: int
    label: str
    suit: str
    value: int


class HandResponse(BaseModel):
    """Hand representation. ``score`` is hidden for the dealer during play."""

    cards: list[CardResponse]
    score: int | None
    is_soft: bool | None
    is_natural: bool | None
    is_bust: bool | None


class RoundStateResponse(BaseModel):
    """Current round state."""

    phase: Literal["betting", "playing", "dealer", "finished"]
    balance: int
    bet_amount: int
    player_hand: HandResponse
    dealer_hand: HandResponse
    dealer_showing: CardResponse | None
    result: Literal["win", "lose", "push"] | None
    payout: int
    balance_delta: int | None
    can_bet: bool
    can_hit: bool
    can_stand: bool
    quick_bets: list[int]


class AdviceResponse(BaseModel):
    """Free-text strategy advice."""

    advice: str


# History schemas
class HistoryEntry(BaseModel):
    """One settled round."""

    bet_amount: int
    player_hand: list[int]
    dealer_hand: list[int]
    player_total: int
    dealer_total: int
    result: Literal["win", "lose", "push"]
    payout: int
    balance_delta: int
    timestamp: datetime


class HistoryResponse(BaseModel):
    """A player's recent rounds, newest first."""

    games: list[HistoryEntry]


class HistoryStatsResponse(BaseModel):
    """Aggregate results over a player's recent rounds."""

    total_games: int
    wins: int
    losses: int
    pushes: int
    win_rate: float
    total_wagered: int
    total_winnings: int
    net_result: int
    biggest_win: int


# Profile schemas
class ChipPackage(BaseModel):
    """A chip top-up offer."""

    amount: int
    price: int
    bonus: int


class TopUpRequest(BaseModel):
    """Add chips, either from a package or a custom amount."""

    amount: int = Field(..., ge=1, le=1_000_000)


class ProfileResponse(BaseModel):
    """Profile and available packages."""

    user_id: str
    email: str | None
    chips: int
    packages: list[ChipPackage]


class TopUpResponse(BaseModel):
    """Result of a chip top-up."""

    added: int
    chips: int
