"""
agora.constants — Shared Constants & Helpers
==============================================

Single source of truth for vote values, the default forum catalogue and
the slug formula.  Import from here instead of duplicating in services
and routes.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------
UPVOTE = 1
DOWNVOTE = -1
VALID_VOTE_VALUES: frozenset[int] = frozenset({UPVOTE, DOWNVOTE})

# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
PROJECT_STATUSES: frozenset[str] = frozenset({"open", "closed"})
DEFAULT_PROJECT_MAX_MEMBERS = 5

# ---------------------------------------------------------------------------
# Default catalogue (seeded on first startup)
# ---------------------------------------------------------------------------
DEFAULT_CATEGORIES: list[dict[str, str]] = [
    {"name": "Development", "description": "Programming, Web, Mobile", "icon": "laptop-code"},
    {"name": "Design", "description": "UI/UX, Graphics, Illustration", "icon": "paint-brush"},
    {"name": "General Discussion", "description": "Industry News, Careers", "icon": "globe"},
    {"name": "Help & Support", "description": "Questions, Troubleshooting", "icon": "question-circle"},
    {"name": "Announcements", "description": "Updates, Events", "icon": "bullhorn"},
]

DEFAULT_TAGS: list[dict[str, str]] = [
    {"name": "Announcement", "color": "#22c55e"},
    {"name": "Question", "color": "#eab308"},
    {"name": "Discussion", "color": "#3b82f6"},
    {"name": "Resource", "color": "#a855f7"},
]

DEFAULT_REWARD_ITEMS: list[dict[str, object]] = [
    {"name": "Profile Flair", "description": "A coloured flair next to your name", "cost": 25, "icon": "sparkles"},
    {"name": "Custom Title", "description": "Pick a title shown on your profile", "cost": 100, "icon": "crown"},
    {"name": "Pinned Thread", "description": "Pin one of your threads for a week", "cost": 250, "icon": "thumbtack", "stock": 10},
]

# ---------------------------------------------------------------------------
# Admin update allow lists
# ---------------------------------------------------------------------------
ALLOWED_CATEGORY_FIELDS: set[str] = {"name", "description", "icon"}
ALLOWED_TAG_FIELDS: set[str] = {"name", "color"}
ALLOWED_REWARD_FIELDS: set[str] = {
    "name", "description", "icon", "cost", "stock", "active",
}

# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------
_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Lower-case *title* and collapse every non-alphanumeric run into ``-``.

    Leading/trailing dashes are trimmed; an empty result becomes ``"post"``.
    """
    slug = _SLUG_STRIP.sub("-", title.lower()).strip("-")
    return slug or "post"
