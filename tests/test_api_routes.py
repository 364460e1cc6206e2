"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Runs the real app against the in-memory database through TestClient.

These tests verify:
- Auth guards on member and admin endpoints
- Registration / login / token flow
- Vote and purchase flows end to end, including status codes
- Route ordering for ``/api/blog/authors`` vs ``/api/blog/{slug}``
"""

from __future__ import annotations

import pytest

from conftest import TEST_PASSWORD, auth, make_token, make_user, reputation_of


@pytest.fixture
def member(db_engine):
    uid = make_user(db_engine, "member")
    return uid, auth(make_token(uid, "member"))


@pytest.fixture
def admin(db_engine):
    uid = make_user(db_engine, "boss", is_admin=True)
    return uid, auth(make_token(uid, "boss"))


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    ADMIN_GET_ENDPOINTS = [
        "/api/admin/users",
        "/api/admin/settings",
        "/api/admin/audit",
        "/api/admin/rewards",
        "/api/admin/logs",
        "/api/blog/authors",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_no_token_returns_401(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_member_token_returns_403(self, client, member, endpoint):
        _, headers = member
        assert client.get(endpoint, headers=headers).status_code == 403

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_token_allowed(self, client, admin, endpoint):
        _, headers = admin
        assert client.get(endpoint, headers=headers).status_code == 200

    def test_garbage_token_returns_401(self, client):
        resp = client.get("/api/auth/me", headers=auth("not-a-jwt"))
        assert resp.status_code == 401

    def test_token_for_deleted_user_returns_401(self, client):
        resp = client.get("/api/auth/me", headers=auth(make_token(424242)))
        assert resp.status_code == 401

    def test_member_writes_require_login(self, client, category_id):
        body = {"title": "t", "content": "c", "category_id": category_id}
        assert client.post("/api/threads", json=body).status_code == 401
        assert client.post("/api/votes", json={"value": 1, "thread_id": 1}).status_code == 401
        assert client.post("/api/rewards/purchase", json={"reward_id": 1}).status_code == 401


# ===========================================================================
# Registration & login
# ===========================================================================
class TestAuthFlow:
    def test_register_login_me(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "newcomer", "email": "new@example.com", "password": "hunter22",
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["is_admin"] is False

        resp = client.post("/api/auth/login", json={"username": "NEWCOMER", "password": "hunter22"})
        assert resp.status_code == 200
        me = client.get("/api/auth/me", headers=auth(resp.json()["token"]))
        assert me.json()["username"] == "newcomer"
        assert me.json()["email"] == "new@example.com"

    def test_bootstrap_admin_from_config(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "root", "email": "root@example.com", "password": "hunter22",
        })
        assert resp.json()["user"]["is_admin"] is True

    def test_duplicate_username_is_409(self, client, member):
        resp = client.post("/api/auth/register", json={
            "username": "member", "email": "x@example.com", "password": "hunter22",
        })
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Username already exists"

    def test_invalid_payload_is_422(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "ab", "email": "not-an-email", "password": "123",
        })
        assert resp.status_code == 422

    def test_bad_password_is_401(self, client, member):
        resp = client.post("/api/auth/login", json={"username": "member", "password": "nope"})
        assert resp.status_code == 401
        ok = client.post("/api/auth/login", json={"username": "member", "password": TEST_PASSWORD})
        assert ok.status_code == 200


# ===========================================================================
# Forum & votes
# ===========================================================================
class TestForumAndVotes:
    def _thread(self, client, headers, category_id) -> int:
        resp = client.post(
            "/api/threads",
            json={"title": "Hello", "content": "World", "category_id": category_id},
            headers=headers,
        )
        assert resp.status_code == 201
        return resp.json()["id"]

    def test_public_reads(self, client):
        assert len(client.get("/api/categories").json()["categories"]) == 5
        assert len(client.get("/api/tags").json()["tags"]) == 4
        assert client.get("/api/threads").json()["limit"] == 20
        settings = client.get("/api/settings/public").json()["settings"]
        assert settings["display.community_title"] == "Agora"
        assert "voting.upvote_weight" not in settings

    def test_vote_flow(self, client, db_engine, member, category_id):
        author_id, author_headers = member
        thread_id = self._thread(client, author_headers, category_id)
        voter = make_user(db_engine, "voter")
        voter_headers = auth(make_token(voter, "voter"))

        resp = client.post("/api/votes", json={"value": 1, "thread_id": thread_id}, headers=voter_headers)
        assert resp.status_code == 201
        assert resp.json()["kind"] == "cast"
        assert resp.json()["vote_score"] == 1
        assert reputation_of(db_engine, author_id) == 1

        resp = client.post("/api/votes", json={"value": -1, "thread_id": thread_id}, headers=voter_headers)
        assert resp.json()["kind"] == "changed"
        assert resp.json()["reputation_delta"] == -2
        assert reputation_of(db_engine, author_id) == -1

        detail = client.get(f"/api/threads/{thread_id}", headers=voter_headers).json()
        assert detail["user_vote"] == -1
        assert detail["downvotes"] == 1

        resp = client.delete(f"/api/votes?thread_id={thread_id}", headers=voter_headers)
        assert resp.status_code == 200
        assert resp.json()["kind"] == "retracted"
        assert reputation_of(db_engine, author_id) == 0

        history = client.get(f"/api/users/{author_id}/reputation").json()
        assert [h["reason"] for h in history["history"]] == [
            "VOTE_RETRACTED", "VOTE_CHANGED", "VOTE_CAST",
        ]

    def test_vote_errors(self, client, member, category_id):
        _, headers = member
        thread_id = self._thread(client, headers, category_id)
        bad_value = client.post("/api/votes", json={"value": 3, "thread_id": thread_id}, headers=headers)
        assert bad_value.status_code == 400
        no_target = client.post("/api/votes", json={"value": 1}, headers=headers)
        assert no_target.status_code == 400
        missing = client.post("/api/votes", json={"value": 1, "thread_id": 9999}, headers=headers)
        assert missing.status_code == 404
        nothing = client.delete(f"/api/votes?thread_id={thread_id}", headers=headers)
        assert nothing.status_code == 404

    def test_comments_and_search(self, client, member, category_id):
        _, headers = member
        thread_id = self._thread(client, headers, category_id)
        resp = client.post(
            f"/api/threads/{thread_id}/comments", json={"content": "Nice"}, headers=headers,
        )
        assert resp.status_code == 201

        assert client.get("/api/search?q=hello").json()["threads"][0]["comment_count"] == 1
        assert client.get("/api/search?q=%20").status_code == 400
        assert client.get("/api/threads/9999").status_code == 404

    def test_leaderboard(self, client, db_engine):
        make_user(db_engine, "top", reputation=9)
        make_user(db_engine, "bottom", reputation=1)
        board = client.get("/api/leaderboard").json()
        assert [u["username"] for u in board["users"]] == ["top", "bottom"]
        assert board["users"][0]["rank"] == 1


# ===========================================================================
# Rewards store
# ===========================================================================
class TestRewards:
    def _reward_id(self, client, name: str) -> int:
        rewards = client.get("/api/rewards").json()["rewards"]
        return next(r["id"] for r in rewards if r["name"] == name)

    def test_purchase_flow(self, client, db_engine):
        uid = make_user(db_engine, "shopper", reputation=30)
        headers = auth(make_token(uid, "shopper"))
        flair = self._reward_id(client, "Profile Flair")

        resp = client.post("/api/rewards/purchase", json={"reward_id": flair}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["reputation"] == 5

        again = client.post("/api/rewards/purchase", json={"reward_id": flair}, headers=headers)
        assert again.status_code == 400
        assert again.json()["detail"] == "Not enough reputation points"

        mine = client.get("/api/rewards/mine", headers=headers).json()["rewards"]
        assert [r["name"] for r in mine] == ["Profile Flair"]

    def test_unknown_reward_is_404(self, client, member):
        _, headers = member
        resp = client.post("/api/rewards/purchase", json={"reward_id": 999}, headers=headers)
        assert resp.status_code == 404

    def test_closed_store_is_403(self, client, admin, member):
        _, admin_headers = admin
        _, member_headers = member
        resp = client.put(
            "/api/admin/settings",
            json=[{"key": "rewards.store_enabled", "value": False}],
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert client.get("/api/rewards").json()["store_enabled"] is False

        flair = self._reward_id(client, "Profile Flair")
        resp = client.post("/api/rewards/purchase", json={"reward_id": flair}, headers=member_headers)
        assert resp.status_code == 403


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminRoutes:
    def test_reward_crud_and_audit(self, client, admin):
        _, headers = admin
        created = client.post(
            "/api/admin/rewards", json={"name": "Golden Star", "cost": 5, "stock": 1}, headers=headers,
        )
        assert created.status_code == 201
        reward_id = created.json()["id"]

        patched = client.patch(
            f"/api/admin/rewards/{reward_id}", json={"stock": None}, headers=headers,
        )
        assert patched.status_code == 200
        assert patched.json()["stock"] is None

        nulled = client.patch(
            f"/api/admin/rewards/{reward_id}", json={"cost": None}, headers=headers,
        )
        assert nulled.status_code == 400
        assert "cost" in nulled.json()["detail"]

        assert client.delete(f"/api/admin/rewards/{reward_id}", headers=headers).status_code == 200
        audit = client.get("/api/admin/audit?target_table=reward_items", headers=headers).json()
        assert [e["action_type"] for e in audit["entries"]] == ["DELETE", "UPDATE", "CREATE"]

    def test_duplicate_category_is_409(self, client, admin):
        _, headers = admin
        resp = client.post("/api/admin/categories", json={"name": "Design"}, headers=headers)
        assert resp.status_code == 409

    def test_adjust_and_reconcile(self, client, db_engine, admin, member):
        _, headers = admin
        member_id, _ = member
        resp = client.post(
            f"/api/admin/users/{member_id}/reputation",
            json={"delta": 15, "reason": "helpful"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert reputation_of(db_engine, member_id) == 15

        report = client.post("/api/admin/reputation/reconcile", headers=headers).json()
        assert report["drifted"] == 0

    def test_log_level(self, client, admin):
        _, headers = admin
        assert client.put("/api/admin/logs/level", json={"level": "info"}, headers=headers).json() == {
            "level": "INFO",
        }
        assert client.put("/api/admin/logs/level", json={"level": "LOUD"}, headers=headers).status_code == 400


# ===========================================================================
# Blog
# ===========================================================================
class TestBlogRoutes:
    def test_authors_route_is_not_a_slug(self, client, admin, member):
        _, admin_headers = admin
        member_id, member_headers = member

        assert client.get("/api/blog/authors", headers=member_headers).status_code == 403
        status = client.get(f"/api/blog/authors/{member_id}", headers=member_headers).json()
        assert status == {"user_id": member_id, "is_author": False}

        resp = client.post("/api/blog/authors", json={"user_id": member_id}, headers=admin_headers)
        assert resp.status_code == 201

        post = client.post(
            "/api/blog", json={"title": "Launch day", "content": "We are live"}, headers=member_headers,
        )
        assert post.status_code == 201
        assert post.json()["slug"] == "launch-day"
        assert client.get("/api/blog/launch-day").json()["title"] == "Launch day"

    def test_non_author_cannot_post(self, client, member):
        _, headers = member
        resp = client.post("/api/blog", json={"title": "x", "content": "y"}, headers=headers)
        assert resp.status_code == 403

    def test_other_users_author_status_is_private(self, client, db_engine, member):
        _, headers = member
        other = make_user(db_engine, "other")
        assert client.get(f"/api/blog/authors/{other}", headers=headers).status_code == 403


# ===========================================================================
# Projects
# ===========================================================================
class TestProjectRoutes:
    def test_create_join_leave(self, client, db_engine, member):
        _, owner_headers = member
        joiner = make_user(db_engine, "joiner")
        joiner_headers = auth(make_token(joiner, "joiner"))

        created = client.post(
            "/api/projects", json={"title": "Bot", "max_members": 2}, headers=owner_headers,
        )
        assert created.status_code == 201
        project_id = created.json()["id"]

        joined = client.post(f"/api/projects/{project_id}/join", headers=joiner_headers)
        assert joined.json()["member_count"] == 2
        again = client.post(f"/api/projects/{project_id}/join", headers=joiner_headers)
        assert again.status_code == 409

        closed = client.patch(
            f"/api/projects/{project_id}", json={"status": "closed"}, headers=joiner_headers,
        )
        assert closed.status_code == 403

        left = client.post(f"/api/projects/{project_id}/leave", headers=joiner_headers)
        assert left.json()["member_count"] == 1
