"""
agora.api.routes.forum — Categories, tags, threads, comments & search
=======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from agora.api.deps import get_engine, get_optional_user, get_session, service_errors
from agora.api.rate_limit import rate_limited_user
from agora.database.models import User
from agora.services import forum_service
from agora.services.settings_service import get_int, get_public_settings

router = APIRouter(tags=["forum"])


class ThreadCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    category_id: int
    tag_ids: list[int] = Field(default_factory=list)


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Categories & tags
# ---------------------------------------------------------------------------
@router.get("/categories")
def list_categories(session: Session = Depends(get_session)):
    return {"categories": forum_service.list_categories(session)}


@router.get("/categories/{category_id}")
def get_category(category_id: int, session: Session = Depends(get_session)):
    with service_errors():
        return forum_service.get_category(session, category_id)


@router.get("/tags")
def list_tags(session: Session = Depends(get_session)):
    return {"tags": forum_service.list_tags(session)}


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------
@router.get("/threads")
def list_threads(
    category_id: int | None = None,
    limit: int | None = Query(None, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
):
    if limit is None:
        limit = get_int(session, "forum.threads_page_size", 20)
    return {
        "threads": forum_service.list_threads(
            session, category_id=category_id, limit=limit, offset=offset,
        ),
        "limit": limit,
        "offset": offset,
    }


@router.get("/threads/{thread_id}")
def get_thread(
    thread_id: int,
    engine=Depends(get_engine),
    viewer: User | None = Depends(get_optional_user),
):
    with service_errors():
        return forum_service.get_thread_detail(
            engine, thread_id, viewer_id=viewer.id if viewer else None,
        )


@router.post("/threads", status_code=201)
def create_thread(
    body: ThreadCreate,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return forum_service.create_thread(
            engine,
            user_id=user.id,
            title=body.title,
            content=body.content,
            category_id=body.category_id,
            tag_ids=body.tag_ids,
        )


@router.post("/threads/{thread_id}/comments", status_code=201)
def create_comment(
    thread_id: int,
    body: CommentCreate,
    user: User = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    with service_errors():
        return forum_service.create_comment(
            engine, user_id=user.id, thread_id=thread_id, content=body.content,
        )


@router.get("/search")
def search(q: str = "", session: Session = Depends(get_session)):
    with service_errors():
        return {"query": q.strip(), "threads": forum_service.search_threads(session, q)}


@router.get("/settings/public")
def public_settings(session: Session = Depends(get_session)):
    """Display and forum settings the frontend needs before login."""
    return {"settings": get_public_settings(session)}
