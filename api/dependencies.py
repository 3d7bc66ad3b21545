"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends

from api.advice import AdviceClient, get_advice_client
from api.session import SessionContext, require_session
from api.store import get_history_store, get_outbox, get_profile_store
from core.persistence import HistoryStore, ProfileStore, SettlementOutbox

CurrentSession = Annotated[SessionContext, Depends(require_session)]
Profiles = Annotated[ProfileStore, Depends(get_profile_store)]
History = Annotated[HistoryStore, Depends(get_history_store)]
Outbox = Annotated[SettlementOutbox, Depends(get_outbox)]
Advisor = Annotated[AdviceClient, Depends(get_advice_client)]
