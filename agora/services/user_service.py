"""
agora.services.user_service — Accounts, Profiles & Leaderboard
================================================================

Registration, credential checks and profile edits.  Passwords are hashed
with passlib's ``pbkdf2_sha256``; usernames and e-mail addresses are
unique case-insensitively (checked up front for a friendly message, and
backed by the unique constraints for races).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.database.models import Thread, User
from agora.services import reputation_service
from agora.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from agora.services.forum_service import enrich_threads

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def user_to_dict(user: User, *, private: bool = False) -> dict:
    """Public view of *user*; ``private=True`` adds the e-mail and admin flag."""
    data = {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "bio": user.bio,
        "avatar_url": user.avatar_url,
        "reputation": user.reputation,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }
    if private:
        data["email"] = user.email
        data["is_admin"] = user.is_admin
    return data


# ---------------------------------------------------------------------------
# Uniqueness helpers
# ---------------------------------------------------------------------------
def _taken(session: Session, column, value: str, *, exclude_id: int | None = None) -> bool:
    stmt = select(User.id).where(func.lower(column) == value.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return session.scalar(stmt) is not None


def _check_unique(
    session: Session,
    *,
    username: str | None = None,
    email: str | None = None,
    exclude_id: int | None = None,
) -> None:
    if username is not None and _taken(session, User.username, username, exclude_id=exclude_id):
        raise ConflictError("Username already exists")
    if email is not None and _taken(session, User.email, email, exclude_id=exclude_id):
        raise ConflictError("Email already exists")


def _clean(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError(f"{field} is required")
    return text


# ---------------------------------------------------------------------------
# Registration & login
# ---------------------------------------------------------------------------
def register_user(
    engine: Engine,
    *,
    username: str,
    email: str,
    password: str,
    name: str | None = None,
    admin_usernames: Iterable[str] = (),
) -> User:
    """Create an account and return the detached :class:`User`.

    Usernames listed in *admin_usernames* (case-insensitive) become admins.

    Raises
    ------
    ValueError
        Missing fields or a password shorter than ``MIN_PASSWORD_LENGTH``.
    ConflictError
        Username or e-mail already registered.
    """
    username = _clean(username, "Username")
    email = _clean(email, "Email")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    is_admin = username.casefold() in {u.casefold() for u in admin_usernames}

    with Session(engine, expire_on_commit=False) as session:
        _check_unique(session, username=username, email=email)
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            name=(name or "").strip() or None,
            is_admin=is_admin,
        )
        session.add(user)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Username or email already exists") from exc
        session.refresh(user)

    logger.info("Registered user %d (%s)%s", user.id, user.username, " as admin" if is_admin else "")
    return user


def authenticate(session: Session, username: str, password: str) -> User | None:
    """Return the user when *username*/*password* match, else None."""
    user = session.scalar(
        select(User).where(func.lower(User.username) == (username or "").strip().lower())
    )
    if user is None or not verify_password(password or "", user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_profile(session: Session, user_id: int) -> dict:
    """User plus their threads (newest first) with tallies and comment counts."""
    user = get_user(session, user_id)
    threads = session.scalars(
        select(Thread)
        .where(Thread.user_id == user_id)
        .order_by(Thread.created_at.desc(), Thread.id.desc())
    ).all()
    return {**user_to_dict(user), "threads": enrich_threads(session, threads)}


def update_profile(
    engine: Engine,
    *,
    user_id: int,
    actor_id: int,
    username: str | None = None,
    email: str | None = None,
    name: str | None = None,
    bio: str | None = None,
    avatar_url: str | None = None,
    current_password: str | None = None,
    new_password: str | None = None,
) -> dict:
    """Edit the caller's own profile.  ``None`` leaves a field unchanged.

    Changing the password requires *current_password*.
    """
    if user_id != actor_id:
        raise PermissionDeniedError("You can only edit your own profile")

    with Session(engine) as session:
        user = get_user(session, user_id)

        if username is not None:
            username = _clean(username, "Username")
        if email is not None:
            email = _clean(email, "Email")
        _check_unique(session, username=username, email=email, exclude_id=user_id)

        if new_password is not None:
            if not current_password or not verify_password(current_password, user.password_hash):
                raise PermissionDeniedError("Current password is incorrect")
            if len(new_password) < MIN_PASSWORD_LENGTH:
                raise ValueError(
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
                )
            user.password_hash = hash_password(new_password)

        if username is not None:
            user.username = username
        if email is not None:
            user.email = email
        if name is not None:
            user.name = name.strip() or None
        if bio is not None:
            user.bio = bio
        if avatar_url is not None:
            user.avatar_url = avatar_url.strip() or None

        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Username or email already exists") from exc
        session.refresh(user)
        result = user_to_dict(user, private=True)

    logger.info("User %d updated their profile", user_id)
    return result


# ---------------------------------------------------------------------------
# Leaderboard & history
# ---------------------------------------------------------------------------
def get_leaderboard(session: Session, *, page: int = 0, page_size: int = 20) -> dict:
    """Users ordered by reputation, highest first (ties by id)."""
    page = max(page, 0)
    page_size = max(1, min(page_size, 100))
    total = session.scalar(select(func.count(User.id))) or 0
    rows = session.scalars(
        select(User)
        .order_by(User.reputation.desc(), User.id)
        .offset(page * page_size)
        .limit(page_size)
    ).all()
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "users": [
            {"rank": page * page_size + i + 1, **user_to_dict(u)}
            for i, u in enumerate(rows)
        ],
    }


def get_reputation_history(session: Session, user_id: int, *, limit: int = 50) -> dict:
    user = get_user(session, user_id)
    return {
        "user_id": user.id,
        "reputation": user.reputation,
        "history": reputation_service.get_history(session, user_id, limit=limit),
    }
