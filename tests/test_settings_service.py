"""
tests/test_settings_service.py — Settings CRUD & seeding
==========================================================
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import AdminLog, Setting
from agora.database.seed import DEFAULT_SETTINGS, seed_defaults
from agora.services import settings_service


class TestSeeding:
    def test_defaults_present(self, db_engine):
        keys = {s["key"] for s in settings_service.get_all_settings(db_engine)}
        assert keys == set(DEFAULT_SETTINGS)

    def test_reseed_is_idempotent_and_keeps_edits(self, db_engine, db_session):
        settings_service.upsert_setting(db_engine, key="voting.upvote_weight", value=7, category="voting")
        counts = seed_defaults(db_engine)
        assert all(n == 0 for n in counts.values())
        assert settings_service.get_int(db_session, "voting.upvote_weight", 1) == 7


class TestTypedReads:
    def test_defaults_for_missing_keys(self, db_session):
        assert settings_service.get_setting_value(db_session, "nope", "fallback") == "fallback"
        assert settings_service.get_int(db_session, "nope", 3) == 3
        assert settings_service.get_bool(db_session, "nope", True) is True

    def test_bad_int_falls_back(self, db_engine, db_session):
        settings_service.upsert_setting(db_engine, key="forum.threads_page_size", value="lots")
        assert settings_service.get_int(db_session, "forum.threads_page_size", 20) == 20

    def test_bool_from_string(self, db_engine, db_session):
        settings_service.upsert_setting(db_engine, key="rewards.store_enabled", value="off")
        assert settings_service.get_bool(db_session, "rewards.store_enabled", True) is False

    def test_vote_weights(self, db_engine, db_session):
        weights = settings_service.get_vote_weights(db_session)
        assert (weights.upvote, weights.downvote) == (1, -1)
        settings_service.upsert_setting(db_engine, key="voting.downvote_weight", value=-3)
        assert settings_service.get_vote_weights(db_session).downvote == -3

    def test_public_settings_exclude_tuning(self, db_session):
        public = settings_service.get_public_settings(db_session)
        assert public["display.reputation_name"] == "Reputation"
        assert "forum.threads_page_size" in public
        assert not any(k.startswith(("voting.", "rewards.")) for k in public)


class TestBulkUpsert:
    def test_audits_only_real_changes(self, db_engine):
        count = settings_service.bulk_upsert(
            db_engine,
            [
                {"key": "voting.upvote_weight", "value": 2},
                {"key": "voting.downvote_weight", "value": -1},
                {"key": "custom.flag", "value": True, "category": "custom"},
            ],
            actor_id=1,
        )
        assert count == 3

        with Session(db_engine) as s:
            entries = s.scalars(
                select(AdminLog).where(AdminLog.target_table == "settings").order_by(AdminLog.id)
            ).all()
            assert [(e.target_id, e.action_type) for e in entries] == [
                ("voting.upvote_weight", "UPDATE"),
                ("custom.flag", "CREATE"),
            ]
            assert entries[0].before_snapshot["value"] == 1
            assert entries[0].after_snapshot["value"] == 2
            assert s.get(Setting, "custom.flag").category == "custom"

    def test_without_actor_writes_no_audit(self, db_engine):
        settings_service.upsert_setting(db_engine, key="display.community_title", value="Forum")
        with Session(db_engine) as s:
            assert s.scalar(select(AdminLog.id)) is None
