"""
agora.api.routes.votes — Cast, change & retract votes
=======================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from agora.api.deps import get_engine, service_errors
from agora.api.rate_limit import rate_limited_user
from agora.database.models import User
from agora.services import vote_service

router = APIRouter(prefix="/votes", tags=["votes"])


class VoteBody(BaseModel):
    value: int
    thread_id: int | None = None
    comment_id: int | None = None


@router.post("", status_code=201)
def cast_vote(
    body: VoteBody,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        outcome = vote_service.cast_vote(
            engine,
            user_id=user.id,
            value=body.value,
            thread_id=body.thread_id,
            comment_id=body.comment_id,
        )
    return outcome.to_dict()


@router.delete("")
def retract_vote(
    thread_id: int | None = None,
    comment_id: int | None = None,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        outcome = vote_service.retract_vote(
            engine, user_id=user.id, thread_id=thread_id, comment_id=comment_id,
        )
    return outcome.to_dict()
