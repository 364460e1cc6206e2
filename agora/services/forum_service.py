"""
agora.services.forum_service — Categories, Tags, Threads & Comments
=====================================================================

Read paths build plain dicts enriched in batches (one query each for
authors, vote tallies, comment counts and tags) rather than per-row
lazy loads.  Write paths open their own session and commit.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from agora.database.models import Category, Comment, Tag, Thread, ThreadTag, User
from agora.engine.voting import VoteTally
from agora.services import vote_service
from agora.services.errors import NotFoundError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisers
# ---------------------------------------------------------------------------
def author_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "avatar_url": user.avatar_url,
        "reputation": user.reputation,
    }


def category_to_dict(c: Category) -> dict:
    return {"id": c.id, "name": c.name, "description": c.description, "icon": c.icon}


def tag_to_dict(t: Tag) -> dict:
    return {"id": t.id, "name": t.name, "color": t.color}


# ---------------------------------------------------------------------------
# Categories & tags
# ---------------------------------------------------------------------------
def list_categories(session: Session) -> list[dict]:
    """All categories with their thread counts, ordered by id."""
    counts = dict(
        session.execute(
            select(Thread.category_id, func.count(Thread.id)).group_by(Thread.category_id)
        ).all()
    )
    return [
        {**category_to_dict(c), "thread_count": counts.get(c.id, 0)}
        for c in session.scalars(select(Category).order_by(Category.id)).all()
    ]


def get_category(session: Session, category_id: int) -> dict:
    category = session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category_to_dict(category)


def list_tags(session: Session) -> list[dict]:
    return [tag_to_dict(t) for t in session.scalars(select(Tag).order_by(Tag.name)).all()]


def tags_for_threads(session: Session, thread_ids: Iterable[int]) -> dict[int, list[dict]]:
    """Batched ``{thread_id: [tag, ...]}``; untagged threads are absent."""
    ids = list(thread_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(ThreadTag.thread_id, Tag)
        .join(Tag, Tag.id == ThreadTag.tag_id)
        .where(ThreadTag.thread_id.in_(ids))
        .order_by(Tag.name)
    ).all()
    result: dict[int, list[dict]] = defaultdict(list)
    for thread_id, tag in rows:
        result[thread_id].append(tag_to_dict(tag))
    return dict(result)


def comment_counts(session: Session, thread_ids: Iterable[int]) -> dict[int, int]:
    ids = list(thread_ids)
    if not ids:
        return {}
    return dict(
        session.execute(
            select(Comment.thread_id, func.count(Comment.id))
            .where(Comment.thread_id.in_(ids))
            .group_by(Comment.thread_id)
        ).all()
    )


# ---------------------------------------------------------------------------
# Threads — reads
# ---------------------------------------------------------------------------
def enrich_threads(session: Session, threads: Sequence[Thread]) -> list[dict]:
    """Serialise *threads* with author, tally, comment count and tags."""
    ids = [t.id for t in threads]
    tallies = vote_service.tally_for_threads(session, ids)
    counts = comment_counts(session, ids)
    tags = tags_for_threads(session, ids)
    return [
        {
            "id": t.id,
            "title": t.title,
            "content": t.content,
            "category_id": t.category_id,
            "views": t.views,
            "created_at": t.created_at.isoformat() if t.created_at else None,
            "updated_at": t.updated_at.isoformat() if t.updated_at else None,
            "author": author_to_dict(t.author),
            **tallies.get(t.id, VoteTally()).to_dict(),
            "comment_count": counts.get(t.id, 0),
            "tags": tags.get(t.id, []),
        }
        for t in threads
    ]


def _newest_first(stmt):
    return stmt.order_by(Thread.created_at.desc(), Thread.id.desc())


def list_threads(
    session: Session,
    *,
    category_id: int | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> list[dict]:
    """Threads newest first, optionally filtered to one category."""
    stmt = _newest_first(select(Thread).options(selectinload(Thread.author)))
    if category_id is not None:
        stmt = stmt.where(Thread.category_id == category_id)
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return enrich_threads(session, session.scalars(stmt).all())


def get_thread_detail(engine: Engine, thread_id: int, *, viewer_id: int | None = None) -> dict:
    """Full thread view; bumps ``views`` by one in the same transaction.

    Comments are returned oldest first, each with its tally and, when
    *viewer_id* is given, the viewer's own vote.
    """
    with Session(engine) as session:
        bumped = session.execute(
            update(Thread)
            .where(Thread.id == thread_id)
            .values(views=Thread.views + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            raise NotFoundError("Thread not found")

        thread = session.scalar(
            select(Thread)
            .where(Thread.id == thread_id)
            .options(
                selectinload(Thread.author),
                selectinload(Thread.comments).selectinload(Comment.author),
            )
        )
        (detail,) = enrich_threads(session, [thread])

        comment_ids = [c.id for c in thread.comments]
        tallies = vote_service.tally_for_comments(session, comment_ids)
        my_votes: dict[int, int] = {}
        if viewer_id is not None:
            detail["user_vote"] = vote_service.get_user_vote(
                session, viewer_id, thread_id=thread_id,
            )
            my_votes = vote_service.get_user_votes_on_comments(
                session, viewer_id, comment_ids,
            )
        else:
            detail["user_vote"] = None

        detail["comments"] = [
            {
                "id": c.id,
                "content": c.content,
                "thread_id": c.thread_id,
                "created_at": c.created_at.isoformat() if c.created_at else None,
                "author": author_to_dict(c.author),
                **tallies.get(c.id, VoteTally()).to_dict(),
                "user_vote": my_votes.get(c.id),
            }
            for c in thread.comments
        ]
        session.commit()
    return detail


def search_threads(session: Session, query: str, *, limit: int = 50) -> list[dict]:
    """Case-insensitive substring match on title or content."""
    needle = (query or "").strip()
    if not needle:
        raise ValueError("Search query is required")
    stmt = _newest_first(
        select(Thread)
        .options(selectinload(Thread.author))
        .where(or_(
            func.lower(Thread.title).contains(needle.lower(), autoescape=True),
            func.lower(Thread.content).contains(needle.lower(), autoescape=True),
        ))
    ).limit(limit)
    return enrich_threads(session, session.scalars(stmt).all())


# ---------------------------------------------------------------------------
# Threads & comments — writes
# ---------------------------------------------------------------------------
def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError(f"{field} is required")
    return text


def create_thread(
    engine: Engine,
    *,
    user_id: int,
    title: str,
    content: str,
    category_id: int,
    tag_ids: Iterable[int] = (),
) -> dict:
    """Create a thread in *category_id*, optionally tagged.

    Raises ValueError for a blank title/content and NotFoundError for an
    unknown category or tag.
    """
    title = _require_text(title, "Title")
    content = _require_text(content, "Content")
    wanted_tags = sorted(set(tag_ids))

    with Session(engine) as session:
        if session.get(Category, category_id) is None:
            raise NotFoundError("Category not found")
        if wanted_tags:
            found = set(session.scalars(select(Tag.id).where(Tag.id.in_(wanted_tags))).all())
            missing = [t for t in wanted_tags if t not in found]
            if missing:
                raise NotFoundError(f"Tag not found: {', '.join(map(str, missing))}")

        thread = Thread(
            title=title, content=content, user_id=user_id, category_id=category_id,
        )
        session.add(thread)
        session.flush()
        for tag_id in wanted_tags:
            session.add(ThreadTag(thread_id=thread.id, tag_id=tag_id))
        session.flush()

        (result,) = enrich_threads(session, [thread])
        session.commit()

    logger.info("Thread %d created by user %d in category %d", result["id"], user_id, category_id)
    return result


def create_comment(engine: Engine, *, user_id: int, thread_id: int, content: str) -> dict:
    content = _require_text(content, "Content")
    with Session(engine) as session:
        if session.get(Thread, thread_id) is None:
            raise NotFoundError("Thread not found")
        comment = Comment(content=content, user_id=user_id, thread_id=thread_id)
        session.add(comment)
        session.flush()
        result = {
            "id": comment.id,
            "content": comment.content,
            "thread_id": thread_id,
            "created_at": comment.created_at.isoformat() if comment.created_at else None,
            "author": author_to_dict(session.get(User, user_id)),
            **VoteTally().to_dict(),
            "user_vote": None,
        }
        session.commit()

    logger.debug("Comment %d added to thread %d by user %d", result["id"], thread_id, user_id)
    return result
