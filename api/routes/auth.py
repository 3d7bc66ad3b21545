"""Sign-in endpoints backing the identity seam."""

import time
from uuid import NAMESPACE_URL, uuid5

from fastapi import APIRouter, BackgroundTasks

from api.dependencies import CurrentSession, History, Outbox, Profiles
from api.logging_utils import get_logger
from api.routes.game import (
    drop_controller,
    new_controller,
    register_controller,
    save_controller,
    schedule_flush,
)
from api.schemas import MeResponse, SignInRequest, SignInResponse
from api.session import (
    SESSION_KEY_CREATED_AT,
    SESSION_KEY_EMAIL,
    SESSION_KEY_USER_ID,
    create_session,
    delete_session,
    extract_session_id,
)

logger = get_logger(__name__)

router = APIRouter()


def user_id_for_email(email: str) -> str:
    """Stable opaque user id for an email address."""
    return str(uuid5(NAMESPACE_URL, f"mailto:{email.strip().lower()}"))


@router.post("/signin")
async def sign_in(
    request: SignInRequest,
    profiles: Profiles,
    outbox: Outbox,
) -> SignInResponse:
    """Sign in, creating a starter profile on first visit."""
    email = request.email.strip().lower()
    user_id = user_id_for_email(email)

    token = await create_session(
        {
            SESSION_KEY_USER_ID: user_id,
            SESSION_KEY_EMAIL: email,
            SESSION_KEY_CREATED_AT: int(time.time()),
        }
    )
    session_id = extract_session_id(token)
    if session_id is None:
        raise RuntimeError("Freshly signed session token failed verification")

    controller = await new_controller(user_id, email, profiles, outbox)
    register_controller(session_id, controller)
    await save_controller(session_id, controller)

    logger.info("User %s signed in", user_id)
    return SignInResponse(
        session_id=token,
        user_id=user_id,
        email=email,
        chips=controller.balance,
    )


@router.post("/signout")
async def sign_out(
    background_tasks: BackgroundTasks,
    session: CurrentSession,
    profiles: Profiles,
    history: History,
    outbox: Outbox,
) -> dict[str, str]:
    """End the session. Settled rounds still reach the stores."""
    drop_controller(session.session_id)
    await delete_session(session.session_id)
    schedule_flush(background_tasks, outbox, profiles, history)

    logger.info("User %s signed out", session.user_id)
    return {"status": "signed_out"}


@router.get("/me")
async def me(session: CurrentSession, profiles: Profiles, outbox: Outbox) -> MeResponse:
    """The signed-in player and their chip count."""
    profile = await profiles.ensure_profile(session.user_id, session.email)
    chips = outbox.pending_balances.get(session.user_id, profile.chips)
    return MeResponse(user_id=session.user_id, email=session.email, chips=chips)
