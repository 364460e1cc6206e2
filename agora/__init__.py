"""
Agora — Community Forum, Blog & Reputation API
================================================
Members register, open threads in categories, comment and vote.  Votes
feed a per-user reputation counter that can be spent in a rewards store.
Administrators curate categories, tags, store items and blog authorship.

Package layout::

    agora/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Vote values, default catalogue, slug helper
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helpers
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings / categories / tags / store
    ├── engine/
    │   └── voting.py      # Pure vote-transition + reputation arithmetic
    ├── services/
    │   ├── vote_service.py     # Atomic vote → reputation updates
    │   ├── reward_service.py   # Store listing + atomic purchase
    │   ├── forum_service.py    # Categories, tags, threads, comments
    │   ├── user_service.py     # Accounts, profiles, leaderboard
    │   ├── blog_service.py     # Blog posts + authorship
    │   ├── project_service.py  # Collaborative projects
    │   ├── admin_service.py    # Audit-logged admin mutations
    │   ├── settings_service.py # Runtime tuning knobs
    │   └── log_buffer.py       # In-memory log tail for admins
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Register / login → JWT
        ├── rate_limit.py  # Per-actor mutation throttle
        └── routes/        # Public, member and admin REST endpoints
"""

__version__ = "0.1.0"
