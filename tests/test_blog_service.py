"""
tests/test_blog_service.py — Blog authorship & posts
======================================================
"""

from __future__ import annotations

import pytest

from agora.services import admin_service, blog_service
from agora.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from conftest import make_user


@pytest.fixture
def admin_id(db_engine):
    return make_user(db_engine, "root", is_admin=True)


@pytest.fixture
def writer(db_engine, admin_id):
    uid = make_user(db_engine, "writer")
    blog_service.add_author(db_engine, actor_id=admin_id, user_id=uid)
    return uid


class TestAuthorship:
    def test_grant_is_audited(self, db_engine, db_session, admin_id, writer):
        assert blog_service.is_author(db_session, writer)
        authors = blog_service.list_authors(db_session)
        assert [a["username"] for a in authors] == ["writer"]
        assert authors[0]["granted_by"] == admin_id

        log = admin_service.get_audit_log(db_session, target_table="blog_authors")
        assert [e["action_type"] for e in log["entries"]] == ["GRANT"]

    def test_double_grant_conflicts(self, db_engine, admin_id, writer):
        with pytest.raises(ConflictError):
            blog_service.add_author(db_engine, actor_id=admin_id, user_id=writer)

    def test_grant_unknown_user(self, db_engine, admin_id):
        with pytest.raises(NotFoundError):
            blog_service.add_author(db_engine, actor_id=admin_id, user_id=999)

    def test_revoke(self, db_engine, db_session, admin_id, writer):
        blog_service.remove_author(db_engine, actor_id=admin_id, user_id=writer)
        assert not blog_service.is_author(db_session, writer)
        with pytest.raises(NotFoundError):
            blog_service.remove_author(db_engine, actor_id=admin_id, user_id=writer)


class TestPosts:
    def test_only_authors_may_post(self, db_engine):
        outsider = make_user(db_engine, "outsider")
        with pytest.raises(PermissionDeniedError, match="Only blog authors"):
            blog_service.create_post(db_engine, user_id=outsider, title="Hi", content="x")

    def test_slugs_are_unique(self, db_engine, writer):
        first = blog_service.create_post(db_engine, user_id=writer, title="Hello, World!", content="x")
        second = blog_service.create_post(db_engine, user_id=writer, title="Hello World", content="y")
        third = blog_service.create_post(db_engine, user_id=writer, title="hello   world", content="z")
        assert [first["slug"], second["slug"], third["slug"]] == [
            "hello-world", "hello-world-2", "hello-world-3",
        ]

    def test_drafts_hidden_from_public(self, db_engine, db_session, writer):
        blog_service.create_post(db_engine, user_id=writer, title="Live", content="x")
        blog_service.create_post(db_engine, user_id=writer, title="Draft", content="x", published=False)

        assert [p["title"] for p in blog_service.list_posts(db_session)] == ["Live"]
        assert len(blog_service.list_posts(db_session, include_unpublished=True)) == 2
        with pytest.raises(NotFoundError):
            blog_service.get_post_by_slug(db_session, "draft")
        assert blog_service.get_post_by_slug(db_session, "draft", include_unpublished=True)["title"] == "Draft"

    def test_update_by_author_regenerates_slug(self, db_engine, writer):
        post = blog_service.create_post(db_engine, user_id=writer, title="Old name", content="x")
        updated = blog_service.update_post(
            db_engine, post_id=post["id"], actor_id=writer, title="New name", published=False,
        )
        assert updated["slug"] == "new-name"
        assert updated["published"] is False

    def test_update_permissions(self, db_engine, admin_id, writer):
        post = blog_service.create_post(db_engine, user_id=writer, title="Mine", content="x")
        stranger = make_user(db_engine, "stranger")
        with pytest.raises(PermissionDeniedError):
            blog_service.update_post(db_engine, post_id=post["id"], actor_id=stranger, content="y")
        edited = blog_service.update_post(
            db_engine, post_id=post["id"], actor_id=admin_id, actor_is_admin=True, content="edited",
        )
        assert edited["content"] == "edited"

    def test_blank_post_rejected(self, db_engine, writer):
        with pytest.raises(ValueError):
            blog_service.create_post(db_engine, user_id=writer, title="  ", content="x")
