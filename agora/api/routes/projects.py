"""
agora.api.routes.projects — Collaborative projects
====================================================
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from agora.api.deps import get_engine, get_session, service_errors
from agora.api.rate_limit import rate_limited_user
from agora.constants import DEFAULT_PROJECT_MAX_MEMBERS
from agora.database.models import User
from agora.services import project_service

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    max_members: int = Field(default=DEFAULT_PROJECT_MAX_MEMBERS, ge=1, le=100)


class ProjectStatus(BaseModel):
    status: Literal["open", "closed"]


@router.get("")
def list_projects(
    status: Literal["open", "closed"] | None = None,
    session: Session = Depends(get_session),
):
    return {"projects": project_service.list_projects(session, status=status)}


@router.get("/{project_id}")
def get_project(project_id: int, session: Session = Depends(get_session)):
    with service_errors():
        return project_service.get_project(session, project_id)


@router.post("", status_code=201)
def create_project(
    body: ProjectCreate,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return project_service.create_project(
            engine,
            owner_id=user.id,
            title=body.title,
            description=body.description,
            max_members=body.max_members,
        )


@router.post("/{project_id}/join")
def join_project(
    project_id: int,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return project_service.join_project(engine, project_id=project_id, user_id=user.id)


@router.post("/{project_id}/leave")
def leave_project(
    project_id: int,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return project_service.leave_project(engine, project_id=project_id, user_id=user.id)


@router.patch("/{project_id}")
def set_status(
    project_id: int,
    body: ProjectStatus,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return project_service.set_project_status(
            engine, project_id=project_id, actor_id=user.id, status=body.status,
        )
