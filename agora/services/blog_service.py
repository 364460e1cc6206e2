"""
agora.services.blog_service — Blog Posts & Authorship
=======================================================

Only users granted blog authorship (``blog_authors``) may publish.
Grants and revocations are admin actions and land in ``admin_log``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from agora.constants import slugify
from agora.database.models import AdminActionType, BlogAuthor, BlogPost, User
from agora.services.admin_service import log_admin_action, row_to_dict
from agora.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from agora.services.forum_service import author_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def post_to_dict(post: BlogPost) -> dict:
    return {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "content": post.content,
        "published": post.published,
        "created_at": post.created_at.isoformat() if post.created_at else None,
        "updated_at": post.updated_at.isoformat() if post.updated_at else None,
        "author": author_to_dict(post.author),
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_posts(session: Session, *, include_unpublished: bool = False) -> list[dict]:
    """Posts newest first; drafts only when *include_unpublished*."""
    stmt = (
        select(BlogPost)
        .options(selectinload(BlogPost.author))
        .order_by(BlogPost.created_at.desc(), BlogPost.id.desc())
    )
    if not include_unpublished:
        stmt = stmt.where(BlogPost.published.is_(True))
    return [post_to_dict(p) for p in session.scalars(stmt).all()]


def get_post_by_slug(session: Session, slug: str, *, include_unpublished: bool = False) -> dict:
    post = session.scalar(select(BlogPost).where(BlogPost.slug == slug))
    if post is None or (not post.published and not include_unpublished):
        raise NotFoundError("Post not found")
    return post_to_dict(post)


def is_author(session: Session, user_id: int) -> bool:
    return session.get(BlogAuthor, user_id) is not None


def list_authors(session: Session) -> list[dict]:
    rows = session.scalars(
        select(BlogAuthor).options(selectinload(BlogAuthor.user)).order_by(BlogAuthor.created_at)
    ).all()
    return [
        {
            **author_to_dict(a.user),
            "granted_by": a.granted_by,
            "granted_at": a.created_at.isoformat() if a.created_at else None,
        }
        for a in rows
    ]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def _unique_slug(session: Session, title: str, *, exclude_id: int | None = None) -> str:
    """``slugify(title)``, suffixed ``-2``, ``-3``… until unused."""
    base = slugify(title)
    stmt = select(BlogPost.slug).where(
        (BlogPost.slug == base) | BlogPost.slug.like(f"{base}-%")
    )
    if exclude_id is not None:
        stmt = stmt.where(BlogPost.id != exclude_id)
    taken = set(session.scalars(stmt).all())
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def create_post(
    engine: Engine, *, user_id: int, title: str, content: str, published: bool = True,
) -> dict:
    """Publish a post as *user_id*, who must be a blog author."""
    title = (title or "").strip()
    if not title or not (content or "").strip():
        raise ValueError("Title and content are required")

    with Session(engine) as session:
        if not is_author(session, user_id):
            raise PermissionDeniedError("Only blog authors can create posts")
        post = BlogPost(
            title=title,
            slug=_unique_slug(session, title),
            content=content,
            user_id=user_id,
            published=published,
        )
        session.add(post)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("A post with this slug already exists") from exc
        result = post_to_dict(post)
        session.commit()

    logger.info("Blog post %r created by user %d", result["slug"], user_id)
    return result


def update_post(
    engine: Engine,
    *,
    post_id: int,
    actor_id: int,
    actor_is_admin: bool = False,
    title: str | None = None,
    content: str | None = None,
    published: bool | None = None,
) -> dict:
    """Edit a post; allowed for its author and for admins.

    A new title regenerates the slug.
    """
    with Session(engine) as session:
        post = session.get(BlogPost, post_id)
        if post is None:
            raise NotFoundError("Post not found")
        if post.user_id != actor_id and not actor_is_admin:
            raise PermissionDeniedError("Only the author or an admin can edit this post")

        if title is not None:
            title = title.strip()
            if not title:
                raise ValueError("Title cannot be blank")
            if title != post.title:
                post.title = title
                post.slug = _unique_slug(session, title, exclude_id=post_id)
        if content is not None:
            if not content.strip():
                raise ValueError("Content cannot be blank")
            post.content = content
        if published is not None:
            post.published = published

        session.flush()
        result = post_to_dict(post)
        session.commit()

    logger.info("Blog post %d updated by user %d", post_id, actor_id)
    return result


def add_author(engine: Engine, *, actor_id: int, user_id: int) -> dict:
    """Grant blog authorship (admin action)."""
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError("User not found")
        if is_author(session, user_id):
            raise ConflictError("User is already a blog author")
        grant = BlogAuthor(user_id=user_id, granted_by=actor_id)
        session.add(grant)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.GRANT,
            target_table="blog_authors",
            target_id=user_id,
            before=None,
            after=row_to_dict(grant),
        )
        result = {**author_to_dict(grant.user), "granted_by": actor_id}
        session.commit()

    logger.info("Admin %d granted blog authorship to user %d", actor_id, user_id)
    return result


def remove_author(engine: Engine, *, actor_id: int, user_id: int) -> None:
    """Revoke blog authorship (admin action).  Existing posts are kept."""
    with Session(engine) as session:
        grant = session.get(BlogAuthor, user_id)
        if grant is None:
            raise NotFoundError("User is not a blog author")
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.REVOKE,
            target_table="blog_authors",
            target_id=user_id,
            before=row_to_dict(grant),
            after=None,
        )
        session.delete(grant)
        session.commit()

    logger.info("Admin %d revoked blog authorship from user %d", actor_id, user_id)
