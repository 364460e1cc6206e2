"""
agora.api.rate_limit — Per-Actor Mutation Rate Limiting
=========================================================

30 mutations per minute per authenticated actor, tracked separately for
member writes (votes, purchases, posts) and admin writes.

Uses a sliding-window counter over the ``rate_limit_events`` table so
state survives restarts and is shared by every API worker.  Returns HTTP
429 with a ``Retry-After`` header when the limit is exceeded.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from agora.api.deps import get_current_admin, get_current_user, get_engine
from agora.database.engine import run_db
from agora.database.models import RateLimitEvent, User

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 30
DEFAULT_WINDOW_SECONDS = 60

_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class MutationRateLimiter:
    """Sliding-window limiter keyed by ``(scope, actor_id)``."""

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        engine: Engine,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    @staticmethod
    def _aware(value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    def _prune(self, session: Session, scope: str, actor_id: str, cutoff: datetime) -> None:
        session.execute(
            delete(RateLimitEvent).where(
                RateLimitEvent.scope == scope,
                RateLimitEvent.actor_id == actor_id,
                RateLimitEvent.timestamp < cutoff,
            )
        )

    def hit(self, actor_id: str, *, scope: str = "member") -> tuple[bool, dict[str, Any]]:
        """Check the window and, if allowed, record the request.

        Returns ``(allowed, info)``; *info* holds ``limit``, ``remaining``
        and ``reset`` (seconds until a slot frees up).
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with Session(self.engine) as session:
            self._prune(session, scope, actor_id, cutoff)
            timestamps = session.scalars(
                select(RateLimitEvent.timestamp)
                .where(RateLimitEvent.scope == scope, RateLimitEvent.actor_id == actor_id)
                .order_by(RateLimitEvent.timestamp.asc())
            ).all()

            if len(timestamps) >= self.max_requests:
                session.commit()
                oldest = self._aware(timestamps[0])
                reset = (oldest + timedelta(seconds=self.window_seconds) - now).total_seconds()
                return False, {
                    "limit": self.max_requests,
                    "remaining": 0,
                    "reset": max(1, int(reset) + 1),
                }

            session.add(RateLimitEvent(actor_id=actor_id, scope=scope, timestamp=now))
            session.commit()

        return True, {
            "limit": self.max_requests,
            "remaining": self.max_requests - len(timestamps) - 1,
            "reset": self.window_seconds,
        }

    def reset(self, actor_id: str | None = None, *, scope: str | None = None) -> None:
        """Clear rate limit state, optionally for one actor/scope only."""
        stmt = delete(RateLimitEvent)
        if actor_id is not None:
            stmt = stmt.where(RateLimitEvent.actor_id == actor_id)
        if scope is not None:
            stmt = stmt.where(RateLimitEvent.scope == scope)
        with Session(self.engine) as session:
            session.execute(stmt)
            session.commit()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_limiter: MutationRateLimiter | None = None


def configure_rate_limiter(
    *,
    engine: Engine,
    max_requests: int = DEFAULT_RATE_LIMIT,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> MutationRateLimiter:
    global _limiter
    _limiter = MutationRateLimiter(max_requests, window_seconds, engine=engine)
    return _limiter


def get_rate_limiter(engine: Engine) -> MutationRateLimiter:
    """The configured limiter, or a default one bound to *engine*."""
    return _limiter if _limiter is not None else MutationRateLimiter(engine=engine)


async def _enforce(request: Request, user: User, scope: str, engine: Engine) -> None:
    if request.method not in _MUTATION_METHODS:
        return
    limiter = get_rate_limiter(engine)
    allowed, info = await run_db(limiter.hit, str(user.id), scope=scope)
    if allowed:
        return
    logger.warning(
        "Rate limit exceeded for %s %d: %d requests in %ds",
        scope, user.id, limiter.max_requests, limiter.window_seconds,
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "error": "rate_limit_exceeded",
            "message": f"Rate limit exceeded: {limiter.max_requests} mutations per minute.",
            "retry_after": info["reset"],
        },
        headers={"Retry-After": str(info["reset"])},
    )


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------
async def rate_limited_user(
    request: Request,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> User:
    """Authenticate *and* throttle member mutations.

    GET/HEAD/OPTIONS pass through without being counted.
    """
    await _enforce(request, user, "member", engine)
    return user


async def rate_limited_admin(
    request: Request,
    admin: User = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
) -> User:
    """Admin guard *and* per-admin mutation throttle."""
    await _enforce(request, admin, "admin", engine)
    return admin
