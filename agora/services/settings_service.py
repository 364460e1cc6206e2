"""
agora.services.settings_service — Settings CRUD
=================================================

Typed read/write access to the ``settings`` table.  Reads go through an
existing session so services can consult tuning values inside their own
transaction; writes by an admin are recorded in ``admin_log``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import AdminLog, AdminActionType, Setting
from agora.engine.voting import VoteWeights

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_setting_value(session: Session, key: str, default=None):
    """Read a single setting's parsed value from an existing session.

    Returns the JSON-decoded value, or *default* when the key does not
    exist.  A value that is not valid JSON is returned as the raw string.
    """
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        return row.value_json


def get_int(session: Session, key: str, default: int) -> int:
    value = get_setting_value(session, key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Setting %s is not an int (%r); using %d", key, value, default)
        return default


def get_bool(session: Session, key: str, default: bool) -> bool:
    value = get_setting_value(session, key, default)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def get_vote_weights(session: Session) -> VoteWeights:
    """Build :class:`VoteWeights` from ``voting.*`` settings."""
    return VoteWeights(
        upvote=get_int(session, "voting.upvote_weight", 1),
        downvote=get_int(session, "voting.downvote_weight", -1),
    )


def get_all_settings(engine) -> list[dict[str, Any]]:
    """Every setting, ordered by category then key, as plain dicts."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        return [
            {
                "key": r.key,
                "value": get_setting_value(session, r.key),
                "category": r.category,
                "description": r.description,
            }
            for r in rows
        ]


def get_public_settings(session: Session) -> dict[str, Any]:
    """Settings in the ``display`` and ``forum`` categories."""
    rows = session.scalars(
        select(Setting).where(Setting.category.in_(("display", "forum")))
    ).all()
    result: dict[str, Any] = {}
    for r in rows:
        try:
            result[r.key] = json.loads(r.value_json)
        except (json.JSONDecodeError, TypeError):
            result[r.key] = r.value_json
    return result


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def upsert_setting(
    engine,
    *,
    key: str,
    value: Any,
    category: str = "general",
    description: str | None = None,
) -> None:
    """Insert or update a single setting."""
    bulk_upsert(engine, [{
        "key": key,
        "value": value,
        "category": category,
        **({"description": description} if description is not None else {}),
    }])


def bulk_upsert(engine, settings: list[dict], *, actor_id: int | None = None) -> int:
    """Upsert many settings at once.

    Each dict should have at least ``key`` and ``value``.
    Optional: ``category``, ``description``.

    When *actor_id* is provided, each change is individually recorded in
    ``admin_log`` with before/after snapshots.

    Returns the number of rows touched.
    """
    count = 0
    with Session(engine) as session:
        for item in settings:
            key = item["key"]
            value_json = json.dumps(item["value"])
            existing = session.get(Setting, key)

            before_snapshot: dict | None = None
            if existing is not None:
                before_snapshot = {
                    "key": existing.key,
                    "value": json.loads(existing.value_json) if existing.value_json else None,
                    "category": existing.category,
                    "description": existing.description,
                }
                existing.value_json = value_json
                if "category" in item:
                    existing.category = item["category"]
                if "description" in item:
                    existing.description = item["description"]
            else:
                existing = Setting(
                    key=key,
                    value_json=value_json,
                    category=item.get("category", "general"),
                    description=item.get("description"),
                )
                session.add(existing)

            if actor_id is not None:
                after_snapshot = {
                    "key": key,
                    "value": item["value"],
                    "category": existing.category,
                    "description": existing.description,
                }
                if before_snapshot != after_snapshot:
                    session.add(AdminLog(
                        actor_id=actor_id,
                        action_type=(
                            AdminActionType.UPDATE if before_snapshot else AdminActionType.CREATE
                        ).value,
                        target_table="settings",
                        target_id=key,
                        before_snapshot=before_snapshot,
                        after_snapshot=after_snapshot,
                    ))

            count += 1
        session.commit()

    logger.info("Upserted %d setting(s)", count)
    return count
