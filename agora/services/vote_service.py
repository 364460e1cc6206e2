"""
agora.services.vote_service — Votes & Author Reputation
=========================================================

The consistency engine of the forum.  Guarantees:

* at most one vote row per (user, thread) and per (user, comment) — the
  unique constraints on ``votes`` enforce it, re-votes update in place;
* casting, changing or retracting a vote moves the target author's
  reputation by exactly :func:`~agora.engine.voting.reputation_delta`,
  in the same transaction as the vote row change.

Concurrency:
    The stored vote is read ``FOR UPDATE`` so two requests from the same
    user serialise on PostgreSQL.  When two first-time votes race, the
    loser's INSERT trips the unique constraint; the whole transaction is
    rolled back and replayed once, by which point the row exists and the
    update path is taken.  Reputation is adjusted with a relative
    ``UPDATE … SET reputation = reputation + :delta`` so concurrent votes
    on the same author never lose increments.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from functools import partial

from sqlalchemy import Engine, case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.database.models import Comment, ReputationReason, Thread, Vote
from agora.engine.voting import (
    VoteTally,
    VoteTransition,
    plan_transition,
    validate_vote_value,
)
from agora.services import reputation_service
from agora.services.errors import NotFoundError
from agora.services.settings_service import get_vote_weights

logger = logging.getLogger(__name__)

# One replay after a unique-constraint race is always enough: the row
# that won the race is visible to the second attempt.
_MAX_ATTEMPTS = 2

_REASON_BY_KIND = {
    "cast": ReputationReason.VOTE_CAST,
    "changed": ReputationReason.VOTE_CHANGED,
    "retracted": ReputationReason.VOTE_RETRACTED,
}


@dataclass
class VoteOutcome:
    """Result of a cast or retract."""

    vote: dict | None
    transition: VoteTransition
    author_id: int
    author_reputation: int
    tally: VoteTally

    def to_dict(self) -> dict:
        return {
            "vote": self.vote,
            "kind": self.transition.kind,
            "reputation_delta": self.transition.delta,
            "author_id": self.author_id,
            "author_reputation": self.author_reputation,
            **self.tally.to_dict(),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _check_target(thread_id: int | None, comment_id: int | None) -> None:
    if (thread_id is None) == (comment_id is None):
        raise ValueError("Provide either thread_id or comment_id, but not both or neither")


def _resolve_author(session: Session, thread_id: int | None, comment_id: int | None) -> int:
    """Return the author's user id for the target, or raise NotFoundError."""
    if thread_id is not None:
        author_id = session.scalar(select(Thread.user_id).where(Thread.id == thread_id))
        if author_id is None:
            raise NotFoundError("Thread not found")
    else:
        author_id = session.scalar(select(Comment.user_id).where(Comment.id == comment_id))
        if author_id is None:
            raise NotFoundError("Comment not found")
    return author_id


def _target_clause(thread_id: int | None, comment_id: int | None):
    if thread_id is not None:
        return Vote.thread_id == thread_id
    return Vote.comment_id == comment_id


def _locked_vote(
    session: Session, user_id: int, thread_id: int | None, comment_id: int | None,
) -> Vote | None:
    return session.scalar(
        select(Vote)
        .where(Vote.user_id == user_id, _target_clause(thread_id, comment_id))
        .with_for_update()
    )


def _target_tally(session: Session, thread_id: int | None, comment_id: int | None) -> VoteTally:
    if thread_id is not None:
        return tally_for_threads(session, [thread_id]).get(thread_id, VoteTally())
    return tally_for_comments(session, [comment_id]).get(comment_id, VoteTally())


def vote_to_dict(v: Vote) -> dict:
    return {
        "id": v.id,
        "value": v.value,
        "user_id": v.user_id,
        "thread_id": v.thread_id,
        "comment_id": v.comment_id,
        "created_at": v.created_at.isoformat() if v.created_at else None,
    }


# ---------------------------------------------------------------------------
# Cast / change
# ---------------------------------------------------------------------------
def _cast_once(
    engine: Engine,
    *,
    user_id: int,
    value: int,
    thread_id: int | None,
    comment_id: int | None,
) -> VoteOutcome:
    with Session(engine) as session:
        author_id = _resolve_author(session, thread_id, comment_id)
        weights = get_vote_weights(session)

        vote = _locked_vote(session, user_id, thread_id, comment_id)
        old_value = vote.value if vote is not None else None
        transition = plan_transition(
            old_value, value, weights, self_vote=(author_id == user_id),
        )

        if vote is None:
            vote = Vote(
                user_id=user_id,
                value=value,
                thread_id=thread_id,
                comment_id=comment_id,
            )
            session.add(vote)
            session.flush()  # unique-constraint race surfaces here
        elif transition.changed:
            vote.value = value
            session.flush()

        if transition.delta:
            balance = reputation_service.apply_delta(
                session,
                user_id=author_id,
                delta=transition.delta,
                reason=_REASON_BY_KIND[transition.kind],
                actor_id=user_id,
                vote_id=vote.id,
                metadata={
                    "thread_id": thread_id,
                    "comment_id": comment_id,
                    "old_value": old_value,
                    "new_value": value,
                },
            )
        else:
            balance = reputation_service.apply_delta(
                session, user_id=author_id, delta=0, reason=ReputationReason.VOTE_CAST,
            )

        outcome = VoteOutcome(
            vote=vote_to_dict(vote),
            transition=transition,
            author_id=author_id,
            author_reputation=balance,
            tally=_target_tally(session, thread_id, comment_id),
        )
        session.commit()

    logger.info(
        "Vote %s by user %d on %s → %+d reputation for user %d",
        transition.kind, user_id,
        f"thread {thread_id}" if thread_id is not None else f"comment {comment_id}",
        transition.delta, author_id,
    )
    return outcome


def cast_vote(
    engine: Engine,
    *,
    user_id: int,
    value: int,
    thread_id: int | None = None,
    comment_id: int | None = None,
) -> VoteOutcome:
    """Create or update *user_id*'s vote on a thread or comment.

    Raises
    ------
    ValueError
        Neither or both targets given, or *value* is not ±1.
    NotFoundError
        The target thread/comment does not exist.
    """
    _check_target(thread_id, comment_id)
    validate_vote_value(value)
    attempt = partial(
        _cast_once,
        engine,
        user_id=user_id,
        value=value,
        thread_id=thread_id,
        comment_id=comment_id,
    )
    for _ in range(_MAX_ATTEMPTS - 1):
        try:
            return attempt()
        except IntegrityError:
            logger.info(
                "Concurrent first vote by user %d detected; replaying", user_id,
            )
    return attempt()


# ---------------------------------------------------------------------------
# Retract
# ---------------------------------------------------------------------------
def retract_vote(
    engine: Engine,
    *,
    user_id: int,
    thread_id: int | None = None,
    comment_id: int | None = None,
) -> VoteOutcome:
    """Delete the user's vote on the target and reverse its reputation.

    Raises NotFoundError if the target or the vote doesn't exist.
    """
    _check_target(thread_id, comment_id)
    with Session(engine) as session:
        author_id = _resolve_author(session, thread_id, comment_id)
        vote = _locked_vote(session, user_id, thread_id, comment_id)
        if vote is None:
            raise NotFoundError("You have not voted on this item")

        transition = plan_transition(
            vote.value, None, get_vote_weights(session),
            self_vote=(author_id == user_id),
        )
        vote_id = vote.id
        session.delete(vote)
        session.flush()

        balance = reputation_service.apply_delta(
            session,
            user_id=author_id,
            delta=transition.delta,
            reason=ReputationReason.VOTE_RETRACTED,
            actor_id=user_id,
            vote_id=vote_id,
            metadata={
                "thread_id": thread_id,
                "comment_id": comment_id,
                "old_value": transition.old_value,
            },
        )
        outcome = VoteOutcome(
            vote=None,
            transition=transition,
            author_id=author_id,
            author_reputation=balance,
            tally=_target_tally(session, thread_id, comment_id),
        )
        session.commit()

    logger.info(
        "Vote retracted by user %d → %+d reputation for user %d",
        user_id, transition.delta, author_id,
    )
    return outcome


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_user_vote(
    session: Session,
    user_id: int,
    *,
    thread_id: int | None = None,
    comment_id: int | None = None,
) -> int | None:
    """The user's current vote value on the target, or None."""
    _check_target(thread_id, comment_id)
    return session.scalar(
        select(Vote.value).where(
            Vote.user_id == user_id, _target_clause(thread_id, comment_id),
        )
    )


def get_user_votes_on_comments(
    session: Session, user_id: int, comment_ids: Iterable[int],
) -> dict[int, int]:
    ids = list(comment_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(Vote.comment_id, Vote.value)
        .where(Vote.user_id == user_id, Vote.comment_id.in_(ids))
    ).all()
    return {cid: value for cid, value in rows}


def _tally_by(session: Session, column, ids: list[int]) -> dict[int, VoteTally]:
    if not ids:
        return {}
    rows = session.execute(
        select(
            column,
            func.sum(case((Vote.value > 0, 1), else_=0)).label("up"),
            func.sum(case((Vote.value < 0, 1), else_=0)).label("down"),
        )
        .where(column.in_(ids))
        .group_by(column)
    ).all()
    return {
        target: VoteTally(upvotes=int(up or 0), downvotes=int(down or 0))
        for target, up, down in rows
    }


def tally_for_threads(session: Session, thread_ids: Iterable[int]) -> dict[int, VoteTally]:
    """Batched ``{thread_id: VoteTally}``; threads without votes are absent."""
    return _tally_by(session, Vote.thread_id, list(thread_ids))


def tally_for_comments(session: Session, comment_ids: Iterable[int]) -> dict[int, VoteTally]:
    """Batched ``{comment_id: VoteTally}``; comments without votes are absent."""
    return _tally_by(session, Vote.comment_id, list(comment_ids))
