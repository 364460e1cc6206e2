"""
agora.services.reputation_service — Reputation Ledger
=======================================================

Every change to ``users.reputation`` goes through :func:`apply_delta`,
which performs a relative SQL update (never read-modify-write) and
appends the matching ``reputation_log`` row in the caller's transaction.

Because of that pairing, ``users.reputation`` must always equal the sum of
the user's ``reputation_log.delta`` values.  :func:`reconcile_reputation`
checks that invariant and, when asked, rewrites drifted counters from the
journal.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from agora.database.engine import get_session
from agora.database.models import ReputationLog, ReputationReason, User
from agora.services.errors import NotFoundError

logger = logging.getLogger(__name__)


def apply_delta(
    session: Session,
    *,
    user_id: int,
    delta: int,
    reason: ReputationReason,
    actor_id: int | None = None,
    vote_id: int | None = None,
    reward_id: int | None = None,
    metadata: dict | None = None,
) -> int:
    """Add *delta* to the user's reputation and journal it.

    Runs inside the caller's transaction; nothing is committed here.
    Returns the balance after the update.  A zero delta is a no-op that
    writes no journal row.
    """
    if delta == 0:
        balance = session.scalar(select(User.reputation).where(User.id == user_id))
        if balance is None:
            raise NotFoundError("User not found")
        return balance

    result = session.execute(
        update(User)
        .where(User.id == user_id)
        .values(reputation=User.reputation + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("User not found")

    balance = session.scalar(select(User.reputation).where(User.id == user_id))
    session.add(ReputationLog(
        user_id=user_id,
        reason=reason.value,
        delta=delta,
        balance_after=balance,
        actor_id=actor_id,
        vote_id=vote_id,
        reward_id=reward_id,
        metadata_=metadata,
    ))
    logger.debug(
        "Reputation %+d for user %d (%s) → %d", delta, user_id, reason.value, balance,
    )
    return balance


def get_history(session: Session, user_id: int, *, limit: int = 50) -> list[dict]:
    """Most recent journal entries for *user_id*, newest first."""
    rows = session.scalars(
        select(ReputationLog)
        .where(ReputationLog.user_id == user_id)
        .order_by(ReputationLog.timestamp.desc(), ReputationLog.id.desc())
        .limit(limit)
    ).all()
    return [
        {
            "id": r.id,
            "reason": r.reason,
            "delta": r.delta,
            "balance_after": r.balance_after,
            "actor_id": r.actor_id,
            "vote_id": r.vote_id,
            "reward_id": r.reward_id,
            "metadata": r.metadata_,
            "timestamp": r.timestamp.isoformat() if r.timestamp else None,
        }
        for r in rows
    ]


def repair_counter(session: Session, user_id: int, *, stored: int, journal: int) -> bool:
    """Shift a drifted counter by ``journal - stored``.

    Only applies while the counter still holds *stored*, so a delta
    committed since the snapshot is never overwritten.
    """
    result = session.execute(
        update(User)
        .where(User.id == user_id, User.reputation == stored)
        .values(reputation=User.reputation + (journal - stored))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Reputation repair skipped for user %d: counter moved since snapshot", user_id,
        )
        return False
    return True


def reconcile_reputation(engine: Engine, *, fix: bool = False) -> dict:
    """Compare each user's counter with the sum of their journal.

    With ``fix=True`` drifted counters are moved onto the journal total.
    A counter that changed after it was read is left alone and listed in
    ``skipped``; the next run picks it up.  Returns
    ``{"checked": N, "drifted": M, "corrections": [...], "skipped": [...]}``.
    """
    corrections: list[dict] = []
    skipped: list[int] = []

    with get_session(engine) as session:
        # Counters first: a delta committed after this read moves the counter,
        # so the guarded repair skips it.
        users = session.execute(select(User.id, User.reputation)).all()
        journal_totals = dict(
            session.execute(
                select(ReputationLog.user_id, func.sum(ReputationLog.delta))
                .group_by(ReputationLog.user_id)
            ).all()
        )

        for user_id, stored in users:
            actual = int(journal_totals.get(user_id) or 0)
            if stored == actual:
                continue
            corrections.append({
                "user_id": user_id,
                "stored": stored,
                "journal": actual,
                "diff": actual - stored,
            })
            if fix and not repair_counter(session, user_id, stored=stored, journal=actual):
                skipped.append(user_id)

    if corrections:
        logger.warning(
            "Reputation reconciliation: %d/%d users drifted (fixed=%s): %s",
            len(corrections), len(users), fix, corrections,
        )
    else:
        logger.info("Reputation reconciliation: all %d users match", len(users))

    return {
        "checked": len(users),
        "drifted": len(corrections),
        "fixed": fix and len(corrections) > len(skipped),
        "corrections": corrections,
        "skipped": skipped,
        "timestamp": datetime.now(UTC).isoformat(),
    }
