"""
tests/test_rate_limit.py — Mutation Rate Limiting Tests
=========================================================
Member and admin writes are throttled per actor, returning 429 with a
Retry-After header once the window is full.
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

import agora.api.rate_limit as rl_mod
from agora.api.rate_limit import MutationRateLimiter
from agora.database.models import RateLimitEvent
from conftest import auth, make_token, make_user


# ---------------------------------------------------------------------------
# Unit tests for the MutationRateLimiter core (DB-backed)
# ---------------------------------------------------------------------------
class TestMutationRateLimiter:
    @pytest.fixture(autouse=True)
    def _limiter(self, db_engine):
        self.limiter = MutationRateLimiter(max_requests=3, window_seconds=60, engine=db_engine)
        self.engine = db_engine

    def _events(self) -> int:
        with Session(self.engine) as s:
            return s.query(RateLimitEvent).count()

    def test_allows_requests_within_limit(self):
        remaining = []
        for _ in range(3):
            allowed, info = self.limiter.hit("user1")
            assert allowed
            remaining.append(info["remaining"])
        assert remaining == [2, 1, 0]
        assert self._events() == 3

    def test_blocks_after_limit_exceeded(self):
        for _ in range(3):
            self.limiter.hit("user1")
        allowed, info = self.limiter.hit("user1")
        assert not allowed
        assert info["remaining"] == 0
        assert info["reset"] > 0
        # Rejected requests are not recorded
        assert self._events() == 3

    def test_separate_actors_and_scopes(self):
        for _ in range(3):
            self.limiter.hit("user1")
        assert not self.limiter.hit("user1")[0]
        assert self.limiter.hit("user2")[0]
        assert self.limiter.hit("user1", scope="admin")[0]

    def test_reset_specific_actor(self):
        for _ in range(3):
            self.limiter.hit("user1")
        self.limiter.hit("user2")

        self.limiter.reset("user1")

        assert self.limiter.hit("user1")[0]
        _, info = self.limiter.hit("user2")
        assert info["remaining"] == 1

    def test_reset_all(self):
        self.limiter.hit("user1")
        self.limiter.hit("user2", scope="admin")
        self.limiter.reset()
        assert self._events() == 0


# ---------------------------------------------------------------------------
# Integration through the API
# ---------------------------------------------------------------------------
class TestRateLimitedRoutes:
    def test_member_writes_get_429(self, client, db_engine, category_id):
        uid = make_user(db_engine, "chatty")
        headers = auth(make_token(uid, "chatty"))
        rl_mod.configure_rate_limiter(engine=db_engine, max_requests=2, window_seconds=60)

        body = {"title": "t", "content": "c", "category_id": category_id}
        assert client.post("/api/threads", json=body, headers=headers).status_code == 201
        assert client.post("/api/threads", json=body, headers=headers).status_code == 201

        resp = client.post("/api/threads", json=body, headers=headers)
        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) > 0
        assert resp.json()["detail"]["error"] == "rate_limit_exceeded"

    def test_reads_are_not_counted(self, client, db_engine):
        uid = make_user(db_engine, "reader")
        headers = auth(make_token(uid, "reader"))
        rl_mod.configure_rate_limiter(engine=db_engine, max_requests=1, window_seconds=60)

        for _ in range(3):
            assert client.get("/api/rewards/mine", headers=headers).status_code == 200

    def test_admin_scope_is_separate(self, client, db_engine, category_id):
        admin = make_user(db_engine, "root", is_admin=True)
        headers = auth(make_token(admin, "root"))
        rl_mod.configure_rate_limiter(engine=db_engine, max_requests=1, window_seconds=60)

        body = {"title": "t", "content": "c", "category_id": category_id}
        assert client.post("/api/threads", json=body, headers=headers).status_code == 201
        assert client.post("/api/admin/tags", json={"name": "Fresh"}, headers=headers).status_code == 201
        resp = client.post("/api/admin/tags", json={"name": "Again"}, headers=headers)
        assert resp.status_code == 429
