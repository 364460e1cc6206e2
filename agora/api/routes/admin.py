"""
agora.api.routes.admin — Admin endpoints (JWT + admin flag)
=============================================================

Catalogue CRUD, user management, manual reputation adjustments,
reputation reconciliation, settings, audit log and live logs.  Every
mutation is rate limited per admin and recorded in ``admin_log``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from agora.api.deps import get_current_admin, get_engine, get_session, service_errors
from agora.api.rate_limit import rate_limited_admin
from agora.database.models import User
from agora.services import (
    admin_service,
    reputation_service,
    reward_service,
    settings_service,
)
from agora.services.log_buffer import (
    VALID_LEVELS,
    get_capture_level,
    get_logs,
    set_capture_level,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=50)


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=50)


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default="#9e9e9e", pattern=r"^#[0-9a-fA-F]{6}$")


class TagUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class RewardCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    cost: int = Field(ge=0)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=50)
    stock: int | None = Field(default=None, ge=0)
    active: bool = True


class RewardUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    cost: int | None = Field(default=None, ge=0)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=50)
    stock: int | None = Field(default=None, ge=0)
    active: bool | None = None


class AdminFlag(BaseModel):
    is_admin: bool


class ReputationAdjust(BaseModel):
    delta: int
    reason: str | None = Field(default=None, max_length=500)


class SettingUpdate(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    value: Any
    category: str | None = None
    description: str | None = None


class LogLevel(BaseModel):
    level: str


def _changes(body: BaseModel) -> dict[str, Any]:
    """Fields the client actually sent (``stock: null`` clears stock)."""
    return body.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
@router.post("/categories", status_code=201)
def create_category(
    body: CategoryCreate,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.create_category(engine, actor_id=admin.id, **body.model_dump())


@router.patch("/categories/{category_id}")
def update_category(
    category_id: int,
    body: CategoryUpdate,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.update_category(
            engine, category_id, actor_id=admin.id, **_changes(body),
        )


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        admin_service.delete_category(engine, category_id, actor_id=admin.id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
@router.post("/tags", status_code=201)
def create_tag(
    body: TagCreate,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.create_tag(engine, actor_id=admin.id, **body.model_dump())


@router.patch("/tags/{tag_id}")
def update_tag(
    tag_id: int,
    body: TagUpdate,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.update_tag(engine, tag_id, actor_id=admin.id, **_changes(body))


@router.delete("/tags/{tag_id}")
def delete_tag(
    tag_id: int,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        admin_service.delete_tag(engine, tag_id, actor_id=admin.id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Reward items
# ---------------------------------------------------------------------------
@router.get("/rewards")
def list_rewards(
    admin: User = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    return {"rewards": reward_service.list_reward_items(session, include_inactive=True)}


@router.post("/rewards", status_code=201)
def create_reward(
    body: RewardCreate,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.create_reward_item(engine, actor_id=admin.id, **body.model_dump())


@router.patch("/rewards/{reward_id}")
def update_reward(
    reward_id: int,
    body: RewardUpdate,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.update_reward_item(
            engine, reward_id, actor_id=admin.id, **_changes(body),
        )


@router.delete("/rewards/{reward_id}")
def delete_reward(
    reward_id: int,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        admin_service.delete_reward_item(engine, reward_id, actor_id=admin.id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Users & reputation
# ---------------------------------------------------------------------------
@router.get("/users")
def list_users(
    q: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    admin: User = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    return {"users": admin_service.list_users(session, query=q, limit=limit)}


@router.put("/users/{user_id}/admin")
def set_admin(
    user_id: int,
    body: AdminFlag,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.set_admin(
            engine, actor_id=admin.id, user_id=user_id, is_admin=body.is_admin,
        )


@router.post("/users/{user_id}/reputation")
def adjust_reputation(
    user_id: int,
    body: ReputationAdjust,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    with service_errors():
        return admin_service.adjust_reputation(
            engine, actor_id=admin.id, user_id=user_id, delta=body.delta, reason=body.reason,
        )


@router.post("/reputation/reconcile")
def reconcile_reputation(
    fix: bool = False,
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    """Compare stored reputation against the journal; ``?fix=true`` repairs."""
    report = reputation_service.reconcile_reputation(engine, fix=fix)
    logger.info("Admin %d ran reputation reconciliation (fix=%s)", admin.id, fix)
    return report


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.get("/settings")
def get_all_settings(
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"settings": settings_service.get_all_settings(engine)}


@router.put("/settings")
def update_settings(
    body: list[SettingUpdate],
    admin: User = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    count = settings_service.bulk_upsert(
        engine,
        [s.model_dump(exclude_none=True) | {"value": s.value} for s in body],
        actor_id=admin.id,
    )
    return {"updated": count}


# ---------------------------------------------------------------------------
# Audit log & live logs
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    page: int = Query(0, ge=0),
    page_size: int = Query(50, ge=1, le=200),
    target_table: str | None = None,
    actor_id: int | None = None,
    admin: User = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    return admin_service.get_audit_log(
        session, page=page, page_size=page_size,
        target_table=target_table, actor_id=actor_id,
    )


@router.get("/logs")
def get_live_logs(
    tail: int = Query(200, ge=1, le=5000),
    level: str | None = Query(None),
    logger_filter: str | None = Query(None, alias="logger"),
    admin: User = Depends(get_current_admin),
):
    """Recent entries from the in-memory log buffer."""
    try:
        entries = get_logs(tail=tail, level=level, logger_filter=logger_filter)
    except ValueError as exc:
        raise HTTPException(400, detail=str(exc)) from exc
    return {
        "entries": entries,
        "total": len(entries),
        "capture_level": get_capture_level(),
        "valid_levels": list(VALID_LEVELS),
    }


@router.put("/logs/level")
def change_log_level(
    body: LogLevel,
    admin: User = Depends(rate_limited_admin),
):
    with service_errors():
        return {"level": set_capture_level(body.level)}
