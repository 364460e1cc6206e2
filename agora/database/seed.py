"""
agora.database.seed — Default Data Seeder
===========================================

Baseline rows inserted on first startup so the forum is immediately
usable: tuning settings, the default categories and tags, and a starter
rewards store.

Idempotent — only inserts rows whose natural key (setting key, category
name, tag name, reward name) doesn't already exist.  Rows edited by
admins are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from agora.constants import DEFAULT_CATEGORIES, DEFAULT_REWARD_ITEMS, DEFAULT_TAGS
from agora.database.models import Category, RewardItem, Setting, Tag

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "voting.upvote_weight": (
        1, "voting", "Reputation an author gains per upvote received",
    ),
    "voting.downvote_weight": (
        -1, "voting", "Reputation an author gains (negative = loses) per downvote",
    ),
    "rewards.store_enabled": (True, "rewards", "Allow members to buy store items"),
    "forum.threads_page_size": (20, "forum", "Default page size for thread lists"),
    "forum.leaderboard_page_size": (20, "forum", "Default page size for the leaderboard"),
    "display.community_title": ("Agora", "display", "Display name for the community"),
    "display.reputation_name": (
        "Reputation", "display", "Display name for reputation (e.g. Karma, Points)",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def _seed_settings(session: Session) -> int:
    inserted = 0
    for key, (value, category, desc) in DEFAULT_SETTINGS.items():
        if session.get(Setting, key) is None:
            session.add(Setting(
                key=key,
                value_json=json.dumps(value),
                category=category,
                description=desc,
            ))
            inserted += 1
    return inserted


def _seed_named(session: Session, model: type, rows: list[dict]) -> int:
    """Insert each row of *rows* whose ``name`` is not present yet."""
    existing = set(session.scalars(select(model.name)).all())
    inserted = 0
    for row in rows:
        if row["name"] in existing:
            continue
        session.add(model(**row))
        inserted += 1
    return inserted


def seed_defaults(engine: Engine) -> dict[str, int]:
    """Insert default settings, categories, tags and store items.

    Runs on every startup but only writes missing rows, so it is safe to
    call repeatedly.  Returns the number of rows inserted per table.
    """
    with Session(engine) as session:
        try:
            counts = {
                "settings": _seed_settings(session),
                "categories": _seed_named(session, Category, DEFAULT_CATEGORIES),
                "tags": _seed_named(session, Tag, DEFAULT_TAGS),
                "reward_items": _seed_named(session, RewardItem, DEFAULT_REWARD_ITEMS),
            }
            session.commit()
        except Exception:
            session.rollback()
            raise

    seeded = {table: n for table, n in counts.items() if n}
    if seeded:
        logger.info("Seeded default rows: %s", seeded)
    return counts
