"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# A valid JWT_SECRET must be set before agora.api.deps is imported, because
# the secret is validated at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine  # noqa: E402
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from agora.config import AgoraConfig  # noqa: E402
from agora.database.engine import init_db  # noqa: E402
from agora.database.models import Category, ReputationReason, User  # noqa: E402
from agora.services import reputation_service  # noqa: E402
from agora.services.user_service import hash_password  # noqa: E402


# ---------------------------------------------------------------------------
# SQLite has no JSONB and only autoincrements INTEGER primary keys.
# ---------------------------------------------------------------------------
@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


TEST_PASSWORD = "password123"
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all tables and default seed rows.

    StaticPool keeps every thread on the same in-memory database
    (the rate limiter hops onto a worker thread).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def category_id(db_engine: Engine) -> int:
    """Id of the first seeded category."""
    with Session(db_engine) as session:
        return session.query(Category.id).order_by(Category.id).first()[0]


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    username: str = "alice",
    *,
    is_admin: bool = False,
    reputation: int = 0,
) -> int:
    """Insert a user and return its id.

    Starting reputation is granted through the journal so the
    counter/journal invariant holds from the first row.
    """
    with Session(engine) as session:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=_TEST_PASSWORD_HASH,
            is_admin=is_admin,
        )
        session.add(user)
        session.flush()
        if reputation:
            reputation_service.apply_delta(
                session,
                user_id=user.id,
                delta=reputation,
                reason=ReputationReason.MANUAL_ADJUST,
            )
        session.commit()
        return user.id


def reputation_of(engine: Engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.get(User, user_id).reputation


def make_token(user_id: int, username: str = "someone") -> str:
    """Bearer token for *user_id*, signed with the test secret."""
    from agora.api.deps import JWT_ALGORITHM, JWT_SECRET

    import jwt

    return jwt.encode(
        {"sub": str(user_id), "username": username},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# API client wired to the in-memory database
# ---------------------------------------------------------------------------
@pytest.fixture
def test_config() -> AgoraConfig:
    return AgoraConfig(community_name="Agora Test", admin_usernames=("root",))


@pytest.fixture
def client(db_engine: Engine, test_config: AgoraConfig):
    """TestClient with engine/session/config overridden.

    The lifespan is not run, so the rate limiter falls back to a default
    instance bound to the test engine.
    """
    from fastapi.testclient import TestClient

    import agora.api.rate_limit as rl_mod
    from agora.api.deps import get_config, get_engine, get_session
    from agora.api.main import app

    def _session():
        with Session(db_engine) as session:
            yield session

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_config] = lambda: test_config
    rl_mod._limiter = None

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
    rl_mod._limiter = None
