"""
tests/test_forum_service.py — Categories, threads, comments & search
======================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import Tag
from agora.services import forum_service, vote_service
from agora.services.errors import NotFoundError
from conftest import make_user


def _tag_id(engine, name: str) -> int:
    with Session(engine) as s:
        return s.scalar(select(Tag.id).where(Tag.name == name))


@pytest.fixture
def author(db_engine):
    return make_user(db_engine, "writer")


class TestCatalogue:
    def test_seeded_categories_with_counts(self, db_engine, db_session, author, category_id):
        forum_service.create_thread(
            db_engine, user_id=author, title="T", content="C", category_id=category_id,
        )
        categories = forum_service.list_categories(db_session)
        assert len(categories) == 5
        assert categories[0]["id"] == category_id
        assert categories[0]["thread_count"] == 1
        assert all(c["thread_count"] == 0 for c in categories[1:])

    def test_get_category(self, db_session, category_id):
        assert forum_service.get_category(db_session, category_id)["name"] == "Development"
        with pytest.raises(NotFoundError):
            forum_service.get_category(db_session, 999)

    def test_tags_sorted_by_name(self, db_session):
        names = [t["name"] for t in forum_service.list_tags(db_session)]
        assert names == sorted(names)
        assert "Question" in names


class TestCreateThread:
    def test_creates_enriched_thread(self, db_engine, author, category_id):
        question = _tag_id(db_engine, "Question")
        thread = forum_service.create_thread(
            db_engine,
            user_id=author,
            title="  How do I vote?  ",
            content="Asking for a friend",
            category_id=category_id,
            tag_ids=[question, question],
        )
        assert thread["title"] == "How do I vote?"
        assert thread["author"]["username"] == "writer"
        assert thread["vote_score"] == 0
        assert thread["comment_count"] == 0
        assert [t["name"] for t in thread["tags"]] == ["Question"]

    @pytest.mark.parametrize(("title", "content", "message"), [
        ("", "body", "Title is required"),
        ("title", "   ", "Content is required"),
    ])
    def test_blank_fields(self, db_engine, author, category_id, title, content, message):
        with pytest.raises(ValueError, match=message):
            forum_service.create_thread(
                db_engine, user_id=author, title=title, content=content, category_id=category_id,
            )

    def test_unknown_category_or_tag(self, db_engine, author, category_id):
        with pytest.raises(NotFoundError, match="Category not found"):
            forum_service.create_thread(
                db_engine, user_id=author, title="t", content="c", category_id=999,
            )
        with pytest.raises(NotFoundError, match="Tag not found: 999"):
            forum_service.create_thread(
                db_engine, user_id=author, title="t", content="c",
                category_id=category_id, tag_ids=[999],
            )


class TestReads:
    def test_list_newest_first_and_filter(self, db_engine, db_session, author, category_id):
        first = forum_service.create_thread(
            db_engine, user_id=author, title="one", content="c", category_id=category_id,
        )["id"]
        second = forum_service.create_thread(
            db_engine, user_id=author, title="two", content="c", category_id=category_id,
        )["id"]
        elsewhere = forum_service.create_thread(
            db_engine, user_id=author, title="three", content="c", category_id=category_id + 1,
        )["id"]

        ids = [t["id"] for t in forum_service.list_threads(db_session)]
        assert ids == [elsewhere, second, first]
        ids = [t["id"] for t in forum_service.list_threads(db_session, category_id=category_id)]
        assert ids == [second, first]
        assert len(forum_service.list_threads(db_session, limit=1)) == 1

    def test_detail_bumps_views_and_includes_comments(self, db_engine, author, category_id):
        reader = make_user(db_engine, "reader")
        thread_id = forum_service.create_thread(
            db_engine, user_id=author, title="t", content="c", category_id=category_id,
        )["id"]
        c1 = forum_service.create_comment(db_engine, user_id=reader, thread_id=thread_id, content="a")
        forum_service.create_comment(db_engine, user_id=author, thread_id=thread_id, content="b")
        vote_service.cast_vote(db_engine, user_id=reader, value=1, comment_id=c1["id"])
        vote_service.cast_vote(db_engine, user_id=reader, value=-1, thread_id=thread_id)

        anonymous = forum_service.get_thread_detail(db_engine, thread_id)
        assert anonymous["views"] == 1
        assert anonymous["user_vote"] is None
        assert anonymous["comment_count"] == 2

        detail = forum_service.get_thread_detail(db_engine, thread_id, viewer_id=reader)
        assert detail["views"] == 2
        assert detail["user_vote"] == -1
        assert detail["vote_score"] == -1
        assert [c["content"] for c in detail["comments"]] == ["a", "b"]
        assert detail["comments"][0]["upvotes"] == 1
        assert detail["comments"][0]["user_vote"] == 1
        assert detail["comments"][1]["user_vote"] is None

    def test_detail_missing_thread(self, db_engine):
        with pytest.raises(NotFoundError):
            forum_service.get_thread_detail(db_engine, 12345)

    def test_comment_on_missing_thread(self, db_engine, author):
        with pytest.raises(NotFoundError):
            forum_service.create_comment(db_engine, user_id=author, thread_id=777, content="x")


class TestSearch:
    def test_matches_title_or_content_case_insensitively(
        self, db_engine, db_session, author, category_id,
    ):
        forum_service.create_thread(
            db_engine, user_id=author, title="SQLAlchemy tips", content="sessions",
            category_id=category_id,
        )
        forum_service.create_thread(
            db_engine, user_id=author, title="Other", content="All about sqlalchemy",
            category_id=category_id,
        )
        forum_service.create_thread(
            db_engine, user_id=author, title="Unrelated", content="nothing",
            category_id=category_id,
        )
        hits = forum_service.search_threads(db_session, "SQLALCHEMY")
        assert {t["title"] for t in hits} == {"SQLAlchemy tips", "Other"}

    def test_wildcard_characters_match_literally(
        self, db_engine, db_session, author, category_id,
    ):
        for title in ("abc", "hello world", "100% done", "snake_case"):
            forum_service.create_thread(
                db_engine, user_id=author, title=title, content="body",
                category_id=category_id,
            )
        assert forum_service.search_threads(db_session, "a_c") == []
        assert [t["title"] for t in forum_service.search_threads(db_session, "%")] == ["100% done"]
        assert [t["title"] for t in forum_service.search_threads(db_session, "_")] == ["snake_case"]

    def test_blank_query_rejected(self, db_session):
        with pytest.raises(ValueError, match="Search query is required"):
            forum_service.search_threads(db_session, "   ")
