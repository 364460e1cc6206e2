"""
agora.api.routes.blog — Blog posts & blog authorship
======================================================

The ``/blog/authors`` routes are declared before ``/blog/{slug}`` so the
literal path wins.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from agora.api.deps import (
    get_current_admin,
    get_current_user,
    get_engine,
    get_optional_user,
    get_session,
    service_errors,
)
from agora.api.rate_limit import rate_limited_admin, rate_limited_user
from agora.database.models import User
from agora.services import blog_service

router = APIRouter(prefix="/blog", tags=["blog"])


class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    published: bool = True


class PostUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    content: str | None = None
    published: bool | None = None


class AuthorGrant(BaseModel):
    user_id: int


# ---------------------------------------------------------------------------
# Authors
# ---------------------------------------------------------------------------
@router.get("/authors")
def list_authors(
    admin: User = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    return {"authors": blog_service.list_authors(session)}


@router.post("/authors", status_code=201)
def add_author(
    body: AuthorGrant,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return blog_service.add_author(engine, actor_id=admin.id, user_id=body.user_id)


@router.get("/authors/{user_id}")
def author_status(
    user_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Whether *user_id* may publish; visible to that user and to admins."""
    if user.id != user_id and not user.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not allowed")
    return {"user_id": user_id, "is_author": blog_service.is_author(session, user_id)}


@router.delete("/authors/{user_id}")
def remove_author(
    user_id: int,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        blog_service.remove_author(engine, actor_id=admin.id, user_id=user_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
@router.get("")
def list_posts(
    viewer: User | None = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    include_drafts = bool(viewer and viewer.is_admin)
    return {"posts": blog_service.list_posts(session, include_unpublished=include_drafts)}


@router.post("", status_code=201)
def create_post(
    body: PostCreate,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return blog_service.create_post(
            engine,
            user_id=user.id,
            title=body.title,
            content=body.content,
            published=body.published,
        )


@router.put("/{post_id}")
def update_post(
    post_id: int,
    body: PostUpdate,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return blog_service.update_post(
            engine,
            post_id=post_id,
            actor_id=user.id,
            actor_is_admin=user.is_admin,
            title=body.title,
            content=body.content,
            published=body.published,
        )


@router.get("/{slug}")
def get_post(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    with service_errors():
        return blog_service.get_post_by_slug(
            session, slug, include_unpublished=bool(viewer and viewer.is_admin),
        )
