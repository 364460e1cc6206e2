"""
agora.api.routes.users — Profiles, leaderboard & reputation history
=====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from agora.api.deps import get_current_user, get_engine, get_session, service_errors
from agora.database.models import User
from agora.services import user_service
from agora.services.settings_service import get_int

router = APIRouter(tags=["users"])


class ProfileUpdate(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=50)
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str | None = Field(default=None, max_length=100)
    bio: str | None = None
    avatar_url: str | None = Field(default=None, max_length=500)
    current_password: str | None = None
    new_password: str | None = None


@router.get("/leaderboard")
def leaderboard(
    page: int = Query(0, ge=0),
    page_size: int | None = Query(None, ge=1, le=100),
    session: Session = Depends(get_session),
):
    if page_size is None:
        page_size = get_int(session, "forum.leaderboard_page_size", 20)
    return user_service.get_leaderboard(session, page=page, page_size=page_size)


@router.get("/users/{user_id}")
def get_profile(user_id: int, session: Session = Depends(get_session)):
    with service_errors():
        return user_service.get_profile(session, user_id)


@router.put("/users/{user_id}")
def update_profile(
    user_id: int,
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return user_service.update_profile(
            engine,
            user_id=user_id,
            actor_id=user.id,
            **body.model_dump(exclude_none=True),
        )


@router.get("/users/{user_id}/reputation")
def reputation_history(
    user_id: int,
    limit: int = Query(50, ge=1, le=500),
    session: Session = Depends(get_session),
):
    with service_errors():
        return user_service.get_reputation_history(session, user_id, limit=limit)
