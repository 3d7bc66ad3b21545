"""Profile and chip top-up endpoints."""

from fastapi import APIRouter, HTTPException
from redis.exceptions import RedisError

from api.dependencies import CurrentSession, History, Outbox, Profiles
from api.logging_utils import get_logger
from api.routes.game import get_controller, save_controller
from api.schemas import ChipPackage, ProfileResponse, TopUpRequest, TopUpResponse

logger = get_logger(__name__)

router = APIRouter()

# Demo packages; no payment is processed
CHIP_PACKAGES: tuple[ChipPackage, ...] = (
    ChipPackage(amount=100, price=10, bonus=0),
    ChipPackage(amount=250, price=20, bonus=25),
    ChipPackage(amount=500, price=35, bonus=100),
    ChipPackage(amount=1000, price=60, bonus=300),
    ChipPackage(amount=2500, price=120, bonus=1000),
)


def chips_for(amount: int) -> int:
    """Chips credited for a purchase, including any package bonus."""
    for package in CHIP_PACKAGES:
        if package.amount == amount:
            return amount + package.bonus
    return amount


@router.get("")
async def get_profile(
    session: CurrentSession,
    profiles: Profiles,
    outbox: Outbox,
) -> ProfileResponse:
    """The player's profile and the chip packages on offer."""
    controller = await get_controller(session, profiles, outbox)
    return ProfileResponse(
        user_id=session.user_id,
        email=session.email,
        chips=controller.balance,
        packages=list(CHIP_PACKAGES),
    )


@router.post("/chips")
async def buy_chips(
    request: TopUpRequest,
    session: CurrentSession,
    profiles: Profiles,
    history: History,
    outbox: Outbox,
) -> TopUpResponse:
    """Add chips between rounds."""
    controller = await get_controller(session, profiles, outbox)
    if not controller.can_top_up:
        raise HTTPException(status_code=400, detail="Chips can only be added between rounds")

    # A queued settlement balance would overwrite the top-up
    await outbox.flush(profiles, history)
    if session.user_id in outbox.pending_balances:
        raise HTTPException(status_code=503, detail="Balance sync pending. Please try again.")

    added = chips_for(request.amount)
    new_balance = controller.balance + added
    try:
        written = await profiles.update_balance(session.user_id, new_balance)
    except RedisError:
        logger.exception("Top-up write failed for user %s", session.user_id)
        written = False
    if not written:
        raise HTTPException(status_code=503, detail="Failed to update chips. Please try again.")

    controller.add_chips(added)
    await save_controller(session.session_id, controller)

    logger.info("User %s added %d chips", session.user_id, added)
    return TopUpResponse(added=added, chips=controller.balance)
