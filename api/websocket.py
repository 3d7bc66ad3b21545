"""WebSocket table with paced dealer play."""

import asyncio
import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.advice import AdviceError, get_advice_client
from api.logging_utils import get_logger
from api.routes.game import get_controller, round_state_response, save_controller
from api.session import SessionError, resolve_session
from api.store import get_history_store, get_outbox, get_profile_store
from config import config
from core.game import GamePhase, RoundController
from core.game.events import EventType, GameEvent
from core.persistence import HistoryStore, ProfileStore, SettlementOutbox

logger = get_logger(__name__)

router = APIRouter()

# Events the client animates one at a time
PACED_EVENTS = {EventType.DEALER_HITS}

# Strong references to in-flight outbox flushes
_flush_tasks: set[asyncio.Task] = set()


def schedule_flush(
    outbox: SettlementOutbox, profiles: ProfileStore, history: HistoryStore
) -> asyncio.Task:
    """Flush the outbox in the background so the player is never kept waiting."""
    task = asyncio.create_task(outbox.flush(profiles, history))
    _flush_tasks.add(task)
    task.add_done_callback(_flush_tasks.discard)
    return task


class ConnectionManager:
    """Manage WebSocket connections and their outgoing message queues."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._queues: dict[str, asyncio.Queue] = {}

    async def connect(self, websocket: WebSocket, session_id: str) -> None:
        """Accept and register a new connection."""
        await websocket.accept()
        self._connections[session_id] = websocket
        self._queues[session_id] = asyncio.Queue()

    def disconnect(self, session_id: str) -> None:
        """Remove a connection. The controller stays cached for reconnection."""
        self._connections.pop(session_id, None)
        self._queues.pop(session_id, None)

    def queue(self, session_id: str, item: GameEvent | dict[str, Any]) -> None:
        """Queue an event or a ready message, keeping their relative order."""
        if session_id in self._queues:
            self._queues[session_id].put_nowait(item)

    async def next_item(self, session_id: str) -> GameEvent | dict[str, Any] | None:
        """Wait for the next queued item."""
        queue = self._queues.get(session_id)
        if queue is None:
            return None
        return await queue.get()

    async def send_message(self, session_id: str, message: dict[str, Any]) -> None:
        """Send a message to a specific session."""
        websocket = self._connections.get(session_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Dropping message for closed session %s: %s", session_id, exc)

    @property
    def active_connections(self) -> int:
        """Return number of active connections."""
        return len(self._connections)


# Global connection manager
manager = ConnectionManager()


def _state_message(controller: RoundController) -> dict[str, Any]:
    return {
        "type": "state_update",
        "state": round_state_response(controller).model_dump(),
    }


def _event_message(event: GameEvent) -> dict[str, Any]:
    """Convert a round event to a WebSocket message."""
    return {
        "type": "event",
        "event_type": event.event_type.name,
        "data": event.data,
    }


async def _deliver(session_id: str, delay: float) -> None:
    """Send queued items in order, pausing before each dealer draw."""
    while True:
        item = await manager.next_item(session_id)
        if item is None:
            return
        if isinstance(item, GameEvent):
            if item.event_type in PACED_EVENTS and delay > 0:
                await asyncio.sleep(delay)
            await manager.send_message(session_id, _event_message(item))
        else:
            await manager.send_message(session_id, item)


async def _handle_message(
    session_id: str,
    controller: RoundController,
    message: dict[str, Any],
) -> bool:
    """
    Apply one client message to the controller.

    Returns:
        True if the round changed and should be saved
    """
    msg_type = message.get("type")

    if msg_type == "get_state":
        manager.queue(session_id, _state_message(controller))
        return False

    if msg_type == "bet":
        validation = controller.place_bet(message.get("amount"))
        if not validation:
            manager.queue(session_id, {"type": "error", "message": validation.error})
            return False
        return True

    if msg_type == "action":
        action = message.get("action")
        actions = {
            "hit": controller.hit,
            "stand": controller.stand,
        }
        action_fn = actions.get(action)
        if action_fn is None:
            manager.queue(session_id, {"type": "error", "message": f"Unknown action: {action}"})
            return False
        if not action_fn():
            manager.queue(session_id, {"type": "error", "message": f"Cannot {action} now"})
            return False
        return True

    if msg_type == "new_round":
        if not controller.new_round():
            manager.queue(session_id, {"type": "error", "message": "Round is not finished"})
            return False
        return True

    if msg_type == "advice":
        upcard = controller.dealer_upcard
        if controller.phase != GamePhase.PLAYING or upcard is None:
            manager.queue(
                session_id,
                {"type": "error", "message": "Advice is only available during play"},
            )
            return False
        try:
            advice = await get_advice_client().get_advice(list(controller.round.player_hand), upcard)
        except AdviceError as exc:
            manager.queue(session_id, {"type": "error", "message": str(exc)})
            return False
        manager.queue(session_id, {"type": "advice", "advice": advice})
        return False

    manager.queue(session_id, {"type": "error", "message": f"Unknown message type: {msg_type}"})
    return False


@router.websocket("/game/{token}")
async def game_websocket(websocket: WebSocket, token: str) -> None:
    """
    WebSocket endpoint for real-time round updates.

    Messages from client:
    - {"type": "get_state"}
    - {"type": "bet", "amount": 100}
    - {"type": "action", "action": "hit"|"stand"}
    - {"type": "new_round"}
    - {"type": "advice"}

    Messages to client:
    - {"type": "state_update", "state": {...}}
    - {"type": "event", "event_type": "...", "data": {...}}
    - {"type": "advice", "advice": "..."}
    - {"type": "error", "message": "..."}
    """
    try:
        session = await resolve_session(token)
    except SessionError as exc:
        await websocket.accept()
        await websocket.send_json({"type": "error", "message": str(exc), "redirect": "/signin"})
        await websocket.close(code=4401)
        return

    session_id = session.session_id
    profiles = await get_profile_store()
    history = await get_history_store()
    outbox = get_outbox()
    controller = await get_controller(session, profiles, outbox)

    def forward(event: GameEvent) -> None:
        manager.queue(session_id, event)

    await manager.connect(websocket, session_id)
    controller.subscribe(forward)
    manager.queue(session_id, _state_message(controller))
    delivery = asyncio.create_task(_deliver(session_id, config.game.dealer_draw_delay))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                manager.queue(session_id, {"type": "error", "message": "Malformed message"})
                continue
            if not isinstance(message, dict):
                manager.queue(session_id, {"type": "error", "message": "Malformed message"})
                continue

            if await _handle_message(session_id, controller, message):
                await save_controller(session_id, controller)
                manager.queue(session_id, _state_message(controller))
                if outbox.pending_records or outbox.pending_balances:
                    schedule_flush(outbox, profiles, history)

    except WebSocketDisconnect:
        logger.debug("Session %s disconnected", session_id)
    finally:
        controller.events.unsubscribe(forward)
        delivery.cancel()
        try:
            await delivery
        except asyncio.CancelledError:
            pass
        manager.disconnect(session_id)
