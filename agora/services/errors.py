"""
agora.services.errors — Service-layer exceptions
==================================================

Services raise these; routes translate them into ``HTTPException`` with
the message as ``detail``.  Plain ``ValueError`` is still used for input
that is malformed rather than conflicting (→ 400).
"""

from __future__ import annotations


class NotFoundError(LookupError):
    """The referenced row does not exist (→ 404)."""


class ConflictError(ValueError):
    """The request collides with existing state (→ 409)."""


class PermissionDeniedError(PermissionError):
    """The actor may not perform this action (→ 403)."""


class InsufficientReputationError(ValueError):
    """Reputation balance is below the item's cost (→ 400)."""

    def __init__(self, balance: int, cost: int) -> None:
        super().__init__("Not enough reputation points")
        self.balance = balance
        self.cost = cost


class OutOfStockError(ConflictError):
    """The store item has no stock left (→ 409)."""
