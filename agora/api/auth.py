"""
agora.api.auth — Registration, login & JWT issuance
=====================================================

Tokens are stateless; logout only tells the client to discard its token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from agora.api.deps import (
    create_access_token,
    get_config,
    get_current_user,
    get_engine,
    get_session,
    service_errors,
)
from agora.config import AgoraConfig
from agora.database.models import User
from agora.services import user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterBody(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=6, max_length=128)
    name: str | None = Field(default=None, max_length=100)


class LoginBody(BaseModel):
    username: str
    password: str


def _session_payload(user: User, cfg: AgoraConfig) -> dict:
    return {
        "user": user_service.user_to_dict(user, private=True),
        "token": create_access_token(user, ttl_hours=cfg.token_ttl_hours),
        "token_type": "bearer",
    }


@router.post("/register", status_code=201)
def register(
    body: RegisterBody,
    engine=Depends(get_engine),
    cfg: AgoraConfig = Depends(get_config),
):
    with service_errors():
        user = user_service.register_user(
            engine,
            username=body.username,
            email=body.email,
            password=body.password,
            name=body.name,
            admin_usernames=cfg.admin_usernames,
        )
    return _session_payload(user, cfg)


@router.post("/login")
def login(
    body: LoginBody,
    session: Session = Depends(get_session),
    cfg: AgoraConfig = Depends(get_config),
):
    user = user_service.authenticate(session, body.username, body.password)
    if user is None:
        logger.info("Failed login for %r", body.username)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid username or password")
    return _session_payload(user, cfg)


@router.post("/logout")
def logout(user: User = Depends(get_current_user)):
    return {"ok": True}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return user_service.user_to_dict(user, private=True)
