"""Game API endpoints."""

import time
from typing import Any, Sequence

from fastapi import APIRouter, BackgroundTasks, HTTPException

from api.advice import AdviceError
from api.dependencies import Advisor, CurrentSession, History, Outbox, Profiles
from api.logging_utils import get_logger
from api.schemas import (
    ActionRequest,
    AdviceResponse,
    BetRequest,
    CardResponse,
    HandResponse,
    RoundStateResponse,
)
from api.session import (
    SESSION_KEY_CREATED_AT,
    SESSION_KEY_LAST_ACTIVITY,
    SESSION_KEY_ROUND,
    SessionContext,
    get_session_store,
    on_session_expired,
)
from core.betting import available_quick_bets
from core.cards import Rank, display_suit, rank_label
from core.game import GamePhase, RoundController
from core.hand import Outcome, card_value, is_bust, is_natural, is_soft, score
from core.persistence import (
    HistoryStore,
    ProfileStore,
    SettlementOutbox,
    SettlementRecord,
)

logger = get_logger(__name__)

router = APIRouter()

# In-memory controller cache (for performance, backed by session store)
_controllers: dict[str, RoundController] = {}


def _serialize_round(controller: RoundController) -> dict[str, Any]:
    """Serialize a controller for session storage."""
    current = controller.round
    return {
        "phase": controller.phase.value,
        "balance": controller.balance,
        "user_id": controller.user_id,
        "bet_amount": current.bet_amount,
        "player_hand": [int(r) for r in current.player_hand],
        "dealer_hand": [int(r) for r in current.dealer_hand],
        "deck": [int(r) for r in current.deck],
        "result": current.result.value if current.result else None,
        "payout": current.payout,
        "last_record": controller.last_record.to_dict() if controller.last_record else None,
    }


def _deserialize_round(
    data: dict[str, Any],
    outbox: SettlementOutbox | None = None,
) -> RoundController:
    """Restore a controller from session data."""
    controller = RoundController(
        balance=data["balance"],
        outbox=outbox,
        user_id=data.get("user_id"),
    )

    # Restore state machine state without re-running entry callbacks
    controller._machine_state = data["phase"]

    current = controller.round
    current.bet_amount = data["bet_amount"]
    current.player_hand = [Rank(r) for r in data["player_hand"]]
    current.dealer_hand = [Rank(r) for r in data["dealer_hand"]]
    current.deck = [Rank(r) for r in data["deck"]]
    current.result = Outcome(data["result"]) if data["result"] else None
    current.payout = data["payout"]

    if data.get("last_record"):
        controller.last_record = SettlementRecord.from_dict(data["last_record"])

    return controller


async def _load_controller(session_id: str, outbox: SettlementOutbox) -> RoundController | None:
    """Load a controller from the session store."""
    store = await get_session_store()
    session_data = await store.get(session_id)
    if session_data and session_data.get(SESSION_KEY_ROUND):
        return _deserialize_round(session_data[SESSION_KEY_ROUND], outbox)
    return None


async def save_controller(session_id: str, controller: RoundController) -> None:
    """Save a controller to the session store."""
    store = await get_session_store()
    session_data = await store.get(session_id) or {}
    session_data[SESSION_KEY_ROUND] = _serialize_round(controller)
    session_data[SESSION_KEY_LAST_ACTIVITY] = int(time.time())
    if SESSION_KEY_CREATED_AT not in session_data:
        session_data[SESSION_KEY_CREATED_AT] = int(time.time())
    await store.set(session_id, session_data)


def register_controller(session_id: str, controller: RoundController) -> None:
    """Put a controller in the cache."""
    _controllers[session_id] = controller


async def get_controller(
    session: SessionContext,
    profiles: ProfileStore,
    outbox: SettlementOutbox,
) -> RoundController:
    """Get or create the controller for a session."""
    # Check memory cache first
    if session.session_id in _controllers:
        return _controllers[session.session_id]

    # Try to load from session store
    controller = await _load_controller(session.session_id, outbox)
    if controller is not None:
        _controllers[session.session_id] = controller
        return controller

    # Fresh table for this player
    controller = await new_controller(session.user_id, session.email, profiles, outbox)
    _controllers[session.session_id] = controller
    await save_controller(session.session_id, controller)
    return controller


async def new_controller(
    user_id: str,
    email: str | None,
    profiles: ProfileStore,
    outbox: SettlementOutbox,
) -> RoundController:
    """Create a controller seeded with the player's stored balance."""
    profile = await profiles.ensure_profile(user_id, email)
    # A balance still queued for delivery is newer than the stored one
    balance = outbox.pending_balances.get(user_id, profile.chips)
    controller = RoundController(balance=balance, outbox=outbox)
    controller.signed_in(user_id, balance)
    return controller


def drop_controller(session_id: str, expired: bool = False) -> None:
    """Dispatch sign-out (or expiry) to a cached controller and forget it."""
    controller = _controllers.pop(session_id, None)
    if controller is None:
        return
    if expired:
        controller.session_expired()
    else:
        controller.signed_out()


def clear_controllers() -> None:
    """Forget every cached controller."""
    _controllers.clear()


on_session_expired(lambda session_id: drop_controller(session_id, expired=True))


def schedule_flush(
    background_tasks: BackgroundTasks,
    outbox: SettlementOutbox,
    profiles: ProfileStore,
    history: HistoryStore,
) -> None:
    """Deliver queued settlements after the response is sent."""
    if outbox.pending_records or outbox.pending_balances:
        background_tasks.add_task(outbox.flush, profiles, history)


def _card_response(rank: int, position: int) -> CardResponse:
    """Convert a rank to CardResponse."""
    return CardResponse(
        rank=int(rank),
        label=rank_label(rank),
        suit=display_suit(rank, position).value,
        value=card_value(rank),
    )


def _hand_response(hand: Sequence[int], show_score: bool = True) -> HandResponse:
    """Convert a hand to HandResponse."""
    cards = [_card_response(rank, i) for i, rank in enumerate(hand)]
    if not show_score:
        return HandResponse(cards=cards, score=None, is_soft=None, is_natural=None, is_bust=None)
    return HandResponse(
        cards=cards,
        score=score(hand),
        is_soft=is_soft(hand),
        is_natural=is_natural(hand),
        is_bust=is_bust(hand),
    )


def round_state_response(controller: RoundController) -> RoundStateResponse:
    """Convert controller state to response."""
    current = controller.round
    phase = controller.phase
    finished = phase == GamePhase.FINISHED

    upcard = controller.dealer_upcard
    dealer_showing = _card_response(upcard, 0) if upcard is not None else None

    return RoundStateResponse(
        phase=phase.value,
        balance=controller.balance,
        bet_amount=current.bet_amount,
        player_hand=_hand_response(current.player_hand),
        # Dealer total stays hidden while the player is deciding
        dealer_hand=_hand_response(current.dealer_hand, show_score=phase != GamePhase.PLAYING),
        dealer_showing=dealer_showing,
        result=current.result.value if finished and current.result else None,
        payout=current.payout,
        balance_delta=(
            controller.last_record.balance_delta
            if finished and controller.last_record
            else None
        ),
        can_bet=controller.can_bet,
        can_hit=controller.can_hit,
        can_stand=controller.can_stand,
        quick_bets=available_quick_bets(controller.balance),
    )


@router.get("/state")
async def get_state(
    session: CurrentSession,
    profiles: Profiles,
    outbox: Outbox,
) -> RoundStateResponse:
    """Get current round state."""
    controller = await get_controller(session, profiles, outbox)
    return round_state_response(controller)


@router.post("/bet")
async def place_bet(
    request: BetRequest,
    session: CurrentSession,
    profiles: Profiles,
    outbox: Outbox,
) -> RoundStateResponse:
    """Place a bet and deal cards."""
    controller = await get_controller(session, profiles, outbox)

    validation = controller.place_bet(request.amount)
    if not validation:
        raise HTTPException(status_code=400, detail=validation.error)

    await save_controller(session.session_id, controller)
    return round_state_response(controller)


@router.post("/action")
async def player_action(
    request: ActionRequest,
    background_tasks: BackgroundTasks,
    session: CurrentSession,
    profiles: Profiles,
    history: History,
    outbox: Outbox,
) -> RoundStateResponse:
    """Execute a player action."""
    controller = await get_controller(session, profiles, outbox)

    actions = {
        "hit": controller.hit,
        "stand": controller.stand,
    }

    if not actions[request.action]():
        raise HTTPException(status_code=400, detail=f"Cannot {request.action} now")

    await save_controller(session.session_id, controller)
    schedule_flush(background_tasks, outbox, profiles, history)
    return round_state_response(controller)


@router.post("/new-round")
async def new_round(
    session: CurrentSession,
    profiles: Profiles,
    outbox: Outbox,
) -> RoundStateResponse:
    """Clear the finished round and return to betting."""
    controller = await get_controller(session, profiles, outbox)

    if not controller.new_round():
        raise HTTPException(status_code=400, detail="Round is not finished")

    await save_controller(session.session_id, controller)
    return round_state_response(controller)


@router.post("/advice")
async def get_advice(
    session: CurrentSession,
    profiles: Profiles,
    outbox: Outbox,
    advisor: Advisor,
) -> AdviceResponse:
    """Ask for HIT/STAND advice on the current hand. Never changes the round."""
    controller = await get_controller(session, profiles, outbox)

    upcard = controller.dealer_upcard
    if controller.phase != GamePhase.PLAYING or upcard is None:
        raise HTTPException(status_code=400, detail="Advice is only available during play")

    try:
        advice = await advisor.get_advice(list(controller.round.player_hand), upcard)
    except AdviceError as exc:
        logger.warning("Advice failed for user %s: %s", session.user_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return AdviceResponse(advice=advice)
