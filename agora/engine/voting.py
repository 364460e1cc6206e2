"""
agora.engine.voting — Vote Transitions & Reputation Arithmetic
================================================================

Pure calculation module.  No DB I/O inside the engine; the vote service
feeds it the stored value and the requested value and applies whatever
delta comes back inside its own transaction.

A vote moves between three states — no vote (``None``), upvote (+1) and
downvote (-1).  The author's reputation always equals the sum of the
weights of the votes currently standing on their content, so every
transition is worth ``weight(new) - weight(old)``:

    None → +1   +up          +1 → -1   down - up
    None → -1   +down        -1 → +1   up - down
    +1 → None   -up          v  → v    0

Self-votes are recorded but carry no weight.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from agora.constants import DOWNVOTE, UPVOTE, VALID_VOTE_VALUES

__all__ = [
    "VoteTally",
    "VoteTransition",
    "VoteWeights",
    "plan_transition",
    "reputation_delta",
    "tally",
    "validate_vote_value",
]


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VoteWeights:
    """Reputation contribution of each vote value (``settings`` table)."""

    upvote: int = 1
    downvote: int = -1

    def weight(self, value: int | None) -> int:
        if value is None:
            return 0
        if value == UPVOTE:
            return self.upvote
        if value == DOWNVOTE:
            return self.downvote
        raise ValueError(f"Unknown vote value: {value!r}")


def validate_vote_value(value: int) -> int:
    """Return *value* if it is +1 or -1, otherwise raise ``ValueError``."""
    # bool is an int subclass; True would otherwise pass as an upvote
    if isinstance(value, bool) or value not in VALID_VOTE_VALUES:
        raise ValueError("Vote value must be 1 (upvote) or -1 (downvote)")
    return value


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def reputation_delta(
    old: int | None,
    new: int | None,
    weights: VoteWeights | None = None,
    *,
    self_vote: bool = False,
) -> int:
    """Change in the author's reputation when a vote moves *old* → *new*."""
    if self_vote:
        return 0
    weights = weights or VoteWeights()
    return weights.weight(new) - weights.weight(old)


@dataclass(frozen=True, slots=True)
class VoteTransition:
    """Outcome of applying a requested vote against the stored one."""

    old_value: int | None
    new_value: int | None
    delta: int

    @property
    def kind(self) -> str:
        if self.old_value is None:
            return "cast"
        if self.new_value is None:
            return "retracted"
        if self.old_value == self.new_value:
            return "unchanged"
        return "changed"

    @property
    def changed(self) -> bool:
        return self.old_value != self.new_value


def plan_transition(
    old: int | None,
    new: int | None,
    weights: VoteWeights | None = None,
    *,
    self_vote: bool = False,
) -> VoteTransition:
    """Validate *new* and compute the full :class:`VoteTransition`.

    ``new=None`` plans a retraction; *old* must then be an existing vote.
    """
    if new is not None:
        validate_vote_value(new)
    elif old is None:
        raise ValueError("Nothing to retract: no vote exists")
    return VoteTransition(
        old_value=old,
        new_value=new,
        delta=reputation_delta(old, new, weights, self_vote=self_vote),
    )


# ---------------------------------------------------------------------------
# Tallies
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VoteTally:
    upvotes: int = 0
    downvotes: int = 0

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes

    def to_dict(self) -> dict[str, int]:
        return {
            "vote_score": self.score,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
        }


def tally(values: Iterable[int]) -> VoteTally:
    """Count up- and downvotes in *values*."""
    up = down = 0
    for v in values:
        if v > 0:
            up += 1
        elif v < 0:
            down += 1
    return VoteTally(upvotes=up, downvotes=down)
