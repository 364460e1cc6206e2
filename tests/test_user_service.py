"""
tests/test_user_service.py — Accounts, profiles & leaderboard
===============================================================
"""

from __future__ import annotations

import pytest

from agora.services import forum_service, user_service
from agora.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from conftest import TEST_PASSWORD, make_user


class TestRegistration:
    def test_register_and_authenticate(self, db_engine, db_session):
        user = user_service.register_user(
            db_engine, username="Newbie", email="newbie@example.com", password="s3cret!",
        )
        assert user.id is not None
        assert user.reputation == 0
        assert user.is_admin is False
        assert user.password_hash != "s3cret!"

        assert user_service.authenticate(db_session, "newbie", "s3cret!").id == user.id
        assert user_service.authenticate(db_session, "newbie", "wrong") is None
        assert user_service.authenticate(db_session, "ghost", "s3cret!") is None

    def test_configured_admin_usernames(self, db_engine):
        user = user_service.register_user(
            db_engine, username="Root", email="root@example.com", password="s3cret!",
            admin_usernames=("root",),
        )
        assert user.is_admin is True

    def test_duplicates_are_case_insensitive(self, db_engine):
        make_user(db_engine, "alice")
        with pytest.raises(ConflictError, match="Username already exists"):
            user_service.register_user(
                db_engine, username="ALICE", email="other@example.com", password="s3cret!",
            )
        with pytest.raises(ConflictError, match="Email already exists"):
            user_service.register_user(
                db_engine, username="bob", email="Alice@Example.com", password="s3cret!",
            )

    def test_validation(self, db_engine):
        with pytest.raises(ValueError, match="Password must be at least"):
            user_service.register_user(
                db_engine, username="bob", email="bob@example.com", password="123",
            )
        with pytest.raises(ValueError, match="Username is required"):
            user_service.register_user(
                db_engine, username="  ", email="bob@example.com", password="s3cret!",
            )


class TestProfile:
    def test_profile_includes_threads(self, db_engine, db_session, category_id):
        uid = make_user(db_engine, "poster")
        forum_service.create_thread(
            db_engine, user_id=uid, title="Mine", content="c", category_id=category_id,
        )
        profile = user_service.get_profile(db_session, uid)
        assert profile["username"] == "poster"
        assert "email" not in profile
        assert [t["title"] for t in profile["threads"]] == ["Mine"]

    def test_missing_user(self, db_session):
        with pytest.raises(NotFoundError):
            user_service.get_profile(db_session, 404)

    def test_update_own_profile(self, db_engine):
        uid = make_user(db_engine, "alice")
        result = user_service.update_profile(
            db_engine, user_id=uid, actor_id=uid, name="Alice A.", bio="hi",
            avatar_url="https://example.com/a.png",
        )
        assert result["name"] == "Alice A."
        assert result["avatar_url"] == "https://example.com/a.png"
        assert result["email"] == "alice@example.com"

    def test_cannot_edit_someone_else(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        with pytest.raises(PermissionDeniedError):
            user_service.update_profile(db_engine, user_id=alice, actor_id=bob, bio="pwned")

    def test_rename_to_taken_username(self, db_engine):
        make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        with pytest.raises(ConflictError):
            user_service.update_profile(db_engine, user_id=bob, actor_id=bob, username="Alice")

    def test_password_change_requires_current(self, db_engine, db_session):
        uid = make_user(db_engine, "alice")
        with pytest.raises(PermissionDeniedError, match="Current password is incorrect"):
            user_service.update_profile(
                db_engine, user_id=uid, actor_id=uid, new_password="brand-new",
            )
        user_service.update_profile(
            db_engine, user_id=uid, actor_id=uid,
            current_password=TEST_PASSWORD, new_password="brand-new",
        )
        assert user_service.authenticate(db_session, "alice", "brand-new") is not None


class TestLeaderboard:
    def test_ordered_by_reputation_then_id(self, db_engine, db_session):
        low = make_user(db_engine, "low", reputation=1)
        high = make_user(db_engine, "high", reputation=50)
        tie_a = make_user(db_engine, "tie_a", reputation=10)
        tie_b = make_user(db_engine, "tie_b", reputation=10)

        board = user_service.get_leaderboard(db_session)
        assert board["total"] == 4
        assert [u["id"] for u in board["users"]] == [high, tie_a, tie_b, low]
        assert [u["rank"] for u in board["users"]] == [1, 2, 3, 4]

        page = user_service.get_leaderboard(db_session, page=1, page_size=3)
        assert [u["id"] for u in page["users"]] == [low]
        assert page["users"][0]["rank"] == 4

    def test_reputation_history(self, db_engine, db_session):
        uid = make_user(db_engine, "alice", reputation=5)
        history = user_service.get_reputation_history(db_session, uid)
        assert history["reputation"] == 5
        assert history["history"][0]["reason"] == "MANUAL_ADJUST"
