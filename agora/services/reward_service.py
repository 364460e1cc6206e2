"""
agora.services.reward_service — Rewards Store & Purchases
===========================================================

Members spend reputation on store items.  A purchase is one transaction:

1. the item must exist and be active, and the store must be enabled;
2. reputation is debited with a conditional update
   (``WHERE reputation >= cost``); zero affected rows means the balance
   was too low and nothing has changed;
3. when the item tracks stock, it is decremented with
   ``WHERE stock > 0``; zero rows means it sold out and the debit is
   rolled back together with everything else;
4. the ``user_rewards`` row and the ``reputation_log`` entry are written.

Both guards are evaluated by the database, so two concurrent purchases can
never overdraw a balance or oversell the last unit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from agora.database.models import (
    ReputationLog,
    ReputationReason,
    RewardItem,
    User,
    UserReward,
)
from agora.services.errors import (
    InsufficientReputationError,
    NotFoundError,
    OutOfStockError,
    PermissionDeniedError,
)
from agora.services.settings_service import get_bool

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass
class PurchaseOutcome:
    user_reward_id: int
    reward_id: int
    reward_name: str
    cost: int
    balance: int
    stock_left: int | None

    def to_dict(self) -> dict:
        return {
            "id": self.user_reward_id,
            "reward_id": self.reward_id,
            "reward_name": self.reward_name,
            "cost": self.cost,
            "reputation": self.balance,
            "stock_left": self.stock_left,
        }


def reward_to_dict(item: RewardItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "icon": item.icon,
        "cost": item.cost,
        "stock": item.stock,
        "active": item.active,
    }


def list_reward_items(session: Session, *, include_inactive: bool = False) -> list[dict]:
    """Store items ordered by cost, cheapest first."""
    stmt = select(RewardItem).order_by(RewardItem.cost, RewardItem.id)
    if not include_inactive:
        stmt = stmt.where(RewardItem.active.is_(True))
    return [reward_to_dict(r) for r in session.scalars(stmt).all()]


def purchase_reward(engine: Engine, *, user_id: int, reward_id: int) -> PurchaseOutcome:
    """Buy one unit of *reward_id* for *user_id*.

    Raises
    ------
    NotFoundError
        Unknown or inactive item, or unknown user.
    PermissionDeniedError
        ``rewards.store_enabled`` is off.
    InsufficientReputationError
        Balance below the item's cost.
    OutOfStockError
        Stock is tracked and exhausted.

    On any exception the session is closed without commit, so no partial
    purchase is ever persisted.
    """
    with Session(engine) as session:
        item = session.get(RewardItem, reward_id)
        if item is None or not item.active:
            raise NotFoundError("Reward not found")
        if not get_bool(session, "rewards.store_enabled", True):
            raise PermissionDeniedError("The rewards store is currently closed")

        cost = item.cost
        debit = session.execute(
            update(User)
            .where(User.id == user_id, User.reputation >= cost)
            .values(reputation=User.reputation - cost)
            .execution_options(synchronize_session=False)
        )
        if debit.rowcount == 0:
            balance = session.scalar(select(User.reputation).where(User.id == user_id))
            if balance is None:
                raise NotFoundError("User not found")
            raise InsufficientReputationError(balance, cost)

        stock_left: int | None = None
        if item.stock is not None:
            taken = session.execute(
                update(RewardItem)
                .where(RewardItem.id == reward_id, RewardItem.stock > 0)
                .values(stock=RewardItem.stock - 1)
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount == 0:
                session.rollback()
                raise OutOfStockError("This reward is out of stock")
            stock_left = session.scalar(
                select(RewardItem.stock).where(RewardItem.id == reward_id)
            )

        balance = session.scalar(select(User.reputation).where(User.id == user_id))
        owned = UserReward(user_id=user_id, reward_id=reward_id, cost_paid=cost)
        session.add(owned)
        if cost:
            session.add(ReputationLog(
                user_id=user_id,
                reason=ReputationReason.REWARD_PURCHASE.value,
                delta=-cost,
                balance_after=balance,
                actor_id=user_id,
                reward_id=reward_id,
                metadata_={"reward_name": item.name},
            ))
        session.flush()

        outcome = PurchaseOutcome(
            user_reward_id=owned.id,
            reward_id=reward_id,
            reward_name=item.name,
            cost=cost,
            balance=balance,
            stock_left=stock_left,
        )
        session.commit()

    logger.info(
        "User %d purchased %r for %d reputation (balance %d)",
        user_id, outcome.reward_name, cost, outcome.balance,
    )
    return outcome


def list_user_rewards(session: Session, user_id: int) -> list[dict]:
    """Items *user_id* has purchased, newest first."""
    rows = session.scalars(
        select(UserReward)
        .where(UserReward.user_id == user_id)
        .order_by(UserReward.purchased_at.desc(), UserReward.id.desc())
    ).all()
    return [
        {
            "id": r.id,
            "reward_id": r.reward_id,
            "name": r.reward.name,
            "icon": r.reward.icon,
            "cost_paid": r.cost_paid,
            "purchased_at": r.purchased_at.isoformat() if r.purchased_at else None,
        }
        for r in rows
    ]
