"""
agora.api.routes.rewards — Rewards store
==========================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from agora.api.deps import get_current_user, get_engine, get_session, service_errors
from agora.api.rate_limit import rate_limited_user
from agora.database.models import User
from agora.services import reward_service
from agora.services.settings_service import get_bool

router = APIRouter(prefix="/rewards", tags=["rewards"])


class PurchaseBody(BaseModel):
    reward_id: int


@router.get("")
def list_rewards(session: Session = Depends(get_session)):
    return {
        "store_enabled": get_bool(session, "rewards.store_enabled", True),
        "rewards": reward_service.list_reward_items(session),
    }


@router.post("/purchase")
def purchase(
    body: PurchaseBody,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        outcome = reward_service.purchase_reward(
            engine, user_id=user.id, reward_id=body.reward_id,
        )
    return outcome.to_dict()


@router.get("/mine")
def my_rewards(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {"rewards": reward_service.list_user_rewards(session, user.id)}
