"""
agora.services.admin_service — Admin Mutation Service Layer
=============================================================

Every admin write follows the same pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit

Catalogue tables (categories, tags, reward items) share the generic
``_audited_*`` helpers.  User-level actions (admin flag, manual reputation
adjustments) have bespoke functions because they touch more than one row.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.constants import (
    ALLOWED_CATEGORY_FIELDS,
    ALLOWED_REWARD_FIELDS,
    ALLOWED_TAG_FIELDS,
)
from agora.database.models import (
    AdminActionType,
    AdminLog,
    Category,
    ReputationReason,
    RewardItem,
    Tag,
    Thread,
    User,
    UserReward,
)
from agora.services import reputation_service
from agora.services.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def row_to_dict(obj: Any, *, exclude: tuple[str, ...] = ()) -> dict | None:
    """Column values of an ORM instance as a JSON-serialisable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        if col.name in exclude:
            continue
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: AdminActionType,
    target_table: str,
    target_id: Any,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Add an ``admin_log`` row to the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type.value,
        target_table=target_table,
        target_id=None if target_id is None else str(target_id),
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _check_fields(fields: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValueError(f"Unknown field(s): {', '.join(unknown)}")


def _check_not_null(model_cls: type, fields: dict[str, Any]) -> None:
    columns = model_cls.__table__.columns
    required = sorted(k for k, v in fields.items() if v is None and not columns[k].nullable)
    if required:
        raise ValueError(f"Field(s) cannot be null: {', '.join(required)}")


def _commit_or_conflict(session: Session, message: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError(message) from exc


def _audited_create(engine, row: Any, *, table_name: str, actor_id: int) -> dict:
    with Session(engine) as session:
        session.add(row)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"{type(row).__name__} with that name already exists") from exc
        after = row_to_dict(row)
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table=table_name,
            target_id=row.id,
            before=None,
            after=after,
        )
        session.commit()
    logger.info("Admin %d created %s %s", actor_id, table_name, after["id"])
    return after


def _audited_update(
    engine,
    model_cls: type,
    pk: int,
    *,
    table_name: str,
    actor_id: int,
    allowed: set[str],
    fields: dict[str, Any],
) -> dict:
    _check_fields(fields, allowed)
    _check_not_null(model_cls, fields)
    with Session(engine) as session:
        obj = session.get(model_cls, pk)
        if obj is None:
            raise NotFoundError(f"{model_cls.__name__} not found")
        before = row_to_dict(obj)
        for key, value in fields.items():
            setattr(obj, key, value)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Update conflicts with an existing row") from exc
        after = row_to_dict(obj)
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table=table_name,
            target_id=pk,
            before=before,
            after=after,
        )
        session.commit()
    logger.info("Admin %d updated %s %d: %s", actor_id, table_name, pk, sorted(fields))
    return after


def _audited_delete(
    engine,
    model_cls: type,
    pk: int,
    *,
    table_name: str,
    actor_id: int,
    in_use=None,
) -> None:
    """Delete one row.  *in_use*, if given, is a ``(select_stmt, message)``
    pair; a non-zero count blocks the delete with ConflictError.
    """
    with Session(engine) as session:
        obj = session.get(model_cls, pk)
        if obj is None:
            raise NotFoundError(f"{model_cls.__name__} not found")
        if in_use is not None:
            stmt, message = in_use
            if session.scalar(stmt):
                raise ConflictError(message)
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.DELETE,
            target_table=table_name,
            target_id=pk,
            before=row_to_dict(obj),
            after=None,
        )
        session.delete(obj)
        _commit_or_conflict(session, f"{model_cls.__name__} is still referenced")
    logger.info("Admin %d deleted %s %d", actor_id, table_name, pk)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

def create_category(
    engine, *, actor_id: int, name: str, description: str | None = None, icon: str | None = None,
) -> dict:
    return _audited_create(
        engine,
        Category(name=name.strip(), description=description, icon=icon),
        table_name="categories",
        actor_id=actor_id,
    )


def update_category(engine, category_id: int, *, actor_id: int, **fields: Any) -> dict:
    return _audited_update(
        engine, Category, category_id,
        table_name="categories", actor_id=actor_id,
        allowed=ALLOWED_CATEGORY_FIELDS, fields=fields,
    )


def delete_category(engine, category_id: int, *, actor_id: int) -> None:
    _audited_delete(
        engine, Category, category_id,
        table_name="categories", actor_id=actor_id,
        in_use=(
            select(func.count(Thread.id)).where(Thread.category_id == category_id),
            "Category still has threads",
        ),
    )


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def create_tag(engine, *, actor_id: int, name: str, color: str = "#9e9e9e") -> dict:
    return _audited_create(
        engine, Tag(name=name.strip(), color=color),
        table_name="tags", actor_id=actor_id,
    )


def update_tag(engine, tag_id: int, *, actor_id: int, **fields: Any) -> dict:
    return _audited_update(
        engine, Tag, tag_id,
        table_name="tags", actor_id=actor_id,
        allowed=ALLOWED_TAG_FIELDS, fields=fields,
    )


def delete_tag(engine, tag_id: int, *, actor_id: int) -> None:
    # thread_tags rows go with it (ON DELETE CASCADE)
    _audited_delete(engine, Tag, tag_id, table_name="tags", actor_id=actor_id)


# ---------------------------------------------------------------------------
# Reward items
# ---------------------------------------------------------------------------

def _check_reward_numbers(fields: dict[str, Any]) -> None:
    if fields.get("cost") is not None and fields["cost"] < 0:
        raise ValueError("Cost cannot be negative")
    if fields.get("stock") is not None and fields["stock"] < 0:
        raise ValueError("Stock cannot be negative")


def create_reward_item(
    engine,
    *,
    actor_id: int,
    name: str,
    cost: int,
    description: str | None = None,
    icon: str | None = None,
    stock: int | None = None,
    active: bool = True,
) -> dict:
    _check_reward_numbers({"cost": cost, "stock": stock})
    return _audited_create(
        engine,
        RewardItem(
            name=name.strip(), cost=cost, description=description,
            icon=icon, stock=stock, active=active,
        ),
        table_name="reward_items",
        actor_id=actor_id,
    )


def update_reward_item(engine, reward_id: int, *, actor_id: int, **fields: Any) -> dict:
    _check_reward_numbers(fields)
    return _audited_update(
        engine, RewardItem, reward_id,
        table_name="reward_items", actor_id=actor_id,
        allowed=ALLOWED_REWARD_FIELDS, fields=fields,
    )


def delete_reward_item(engine, reward_id: int, *, actor_id: int) -> None:
    _audited_delete(
        engine, RewardItem, reward_id,
        table_name="reward_items", actor_id=actor_id,
        in_use=(
            select(func.count(UserReward.id)).where(UserReward.reward_id == reward_id),
            "Reward has been purchased; deactivate it instead",
        ),
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

_USER_SNAPSHOT_EXCLUDE = ("password_hash",)


def list_users(session: Session, *, query: str | None = None, limit: int = 100) -> list[dict]:
    stmt = select(User).order_by(User.id).limit(limit)
    if query and query.strip():
        needle = query.strip().lower()
        stmt = stmt.where(
            func.lower(User.username).contains(needle, autoescape=True)
            | func.lower(User.email).contains(needle, autoescape=True)
        )
    return [row_to_dict(u, exclude=_USER_SNAPSHOT_EXCLUDE) for u in session.scalars(stmt).all()]


def set_admin(engine, *, actor_id: int, user_id: int, is_admin: bool) -> dict:
    """Grant or revoke admin rights.  Admins cannot revoke themselves."""
    if actor_id == user_id and not is_admin:
        raise ValueError("You cannot revoke your own admin rights")
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        before = row_to_dict(user, exclude=_USER_SNAPSHOT_EXCLUDE)
        user.is_admin = is_admin
        session.flush()
        after = row_to_dict(user, exclude=_USER_SNAPSHOT_EXCLUDE)
        if before != after:
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.GRANT if is_admin else AdminActionType.REVOKE,
                target_table="users",
                target_id=user_id,
                before=before,
                after=after,
            )
        session.commit()
    logger.info("Admin %d set is_admin=%s for user %d", actor_id, is_admin, user_id)
    return after


def adjust_reputation(
    engine, *, actor_id: int, user_id: int, delta: int, reason: str | None = None,
) -> dict:
    """Manually award (positive *delta*) or penalise (negative) a user.

    Journalled in ``reputation_log`` and audited in ``admin_log``.
    """
    if delta == 0:
        raise ValueError("Adjustment must be non-zero")
    with Session(engine) as session:
        before = session.scalar(select(User.reputation).where(User.id == user_id))
        if before is None:
            raise NotFoundError("User not found")
        balance = reputation_service.apply_delta(
            session,
            user_id=user_id,
            delta=delta,
            reason=ReputationReason.MANUAL_ADJUST,
            actor_id=actor_id,
            metadata={"reason": reason} if reason else None,
        )
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.REPUTATION_ADJUST,
            target_table="users",
            target_id=user_id,
            before={"reputation": before},
            after={"reputation": balance},
            reason=reason,
        )
        session.commit()
    logger.info("Admin %d adjusted user %d reputation by %+d → %d", actor_id, user_id, delta, balance)
    return {"user_id": user_id, "delta": delta, "reputation": balance}


# ---------------------------------------------------------------------------
# Audit log query
# ---------------------------------------------------------------------------

def get_audit_log(
    session: Session,
    *,
    page: int = 0,
    page_size: int = 50,
    target_table: str | None = None,
    actor_id: int | None = None,
) -> dict:
    """Newest-first page of ``admin_log`` with optional filters."""
    page = max(page, 0)
    page_size = max(1, min(page_size, 200))
    stmt = select(AdminLog)
    count_stmt = select(func.count(AdminLog.id))
    if target_table:
        stmt = stmt.where(AdminLog.target_table == target_table)
        count_stmt = count_stmt.where(AdminLog.target_table == target_table)
    if actor_id is not None:
        stmt = stmt.where(AdminLog.actor_id == actor_id)
        count_stmt = count_stmt.where(AdminLog.actor_id == actor_id)

    rows = session.scalars(
        stmt.order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
        .offset(page * page_size)
        .limit(page_size)
    ).all()
    return {
        "page": page,
        "page_size": page_size,
        "total": session.scalar(count_stmt) or 0,
        "entries": [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ],
    }
