"""
agora.services.project_service — Collaborative Projects
=========================================================

Members post projects looking for collaborators.  The owner is the first
member; others join while the project is open and not full.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from agora.constants import DEFAULT_PROJECT_MAX_MEMBERS, PROJECT_STATUSES
from agora.database.models import Project, ProjectMember
from agora.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from agora.services.forum_service import author_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def project_to_dict(p: Project) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "status": p.status,
        "max_members": p.max_members,
        "member_count": len(p.members),
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "owner": author_to_dict(p.owner),
        "members": [author_to_dict(m.user) for m in p.members],
    }


def _load(session: Session, project_id: int) -> Project:
    project = session.scalar(
        select(Project)
        .where(Project.id == project_id)
        .options(
            selectinload(Project.owner),
            selectinload(Project.members).selectinload(ProjectMember.user),
        )
    )
    if project is None:
        raise NotFoundError("Project not found")
    return project


def list_projects(session: Session, *, status: str | None = None) -> list[dict]:
    stmt = (
        select(Project)
        .options(
            selectinload(Project.owner),
            selectinload(Project.members).selectinload(ProjectMember.user),
        )
        .order_by(Project.created_at.desc(), Project.id.desc())
    )
    if status is not None:
        stmt = stmt.where(Project.status == status)
    return [project_to_dict(p) for p in session.scalars(stmt).all()]


def get_project(session: Session, project_id: int) -> dict:
    return project_to_dict(_load(session, project_id))


def create_project(
    engine: Engine,
    *,
    owner_id: int,
    title: str,
    description: str | None = None,
    max_members: int = DEFAULT_PROJECT_MAX_MEMBERS,
) -> dict:
    title = (title or "").strip()
    if not title:
        raise ValueError("Title is required")
    if max_members < 1:
        raise ValueError("max_members must be at least 1")

    with Session(engine) as session:
        project = Project(
            title=title, description=description,
            owner_id=owner_id, max_members=max_members, status="open",
        )
        session.add(project)
        session.flush()
        session.add(ProjectMember(project_id=project.id, user_id=owner_id))
        session.commit()
        result = get_project(session, project.id)

    logger.info("Project %d created by user %d", result["id"], owner_id)
    return result


def join_project(engine: Engine, *, project_id: int, user_id: int) -> dict:
    """Add *user_id* as a member.

    Raises ConflictError when the project is closed, full, or the user is
    already a member.
    """
    with Session(engine) as session:
        project = session.scalar(
            select(Project).where(Project.id == project_id).with_for_update()
        )
        if project is None:
            raise NotFoundError("Project not found")
        if project.status != "open":
            raise ConflictError("Project is not open for new members")
        if session.get(ProjectMember, (project_id, user_id)) is not None:
            raise ConflictError("You are already a member of this project")
        members = session.scalar(
            select(func.count()).select_from(ProjectMember)
            .where(ProjectMember.project_id == project_id)
        )
        if members >= project.max_members:
            raise ConflictError("Project is full")

        session.add(ProjectMember(project_id=project_id, user_id=user_id))
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("You are already a member of this project") from exc
        session.expire_all()
        result = get_project(session, project_id)

    logger.info("User %d joined project %d", user_id, project_id)
    return result


def leave_project(engine: Engine, *, project_id: int, user_id: int) -> dict:
    with Session(engine) as session:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.owner_id == user_id:
            raise ConflictError("The owner cannot leave their own project")
        membership = session.get(ProjectMember, (project_id, user_id))
        if membership is None:
            raise NotFoundError("You are not a member of this project")
        session.delete(membership)
        session.commit()
        session.expire_all()
        result = get_project(session, project_id)

    logger.info("User %d left project %d", user_id, project_id)
    return result


def set_project_status(engine: Engine, *, project_id: int, actor_id: int, status: str) -> dict:
    """Open or close a project (owner only)."""
    if status not in PROJECT_STATUSES:
        raise ValueError(f"Status must be one of: {', '.join(sorted(PROJECT_STATUSES))}")
    with Session(engine) as session:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.owner_id != actor_id:
            raise PermissionDeniedError("Only the project owner can change its status")
        project.status = status
        session.commit()
        session.expire_all()
        result = get_project(session, project_id)

    logger.info("Project %d set to %s by user %d", project_id, status, actor_id)
    return result
