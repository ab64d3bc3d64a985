"""
tests/test_store.py — Config & Vote Store Tests
================================================
"""

from __future__ import annotations

from sqlalchemy import func, select

from conftest import APP_ID, GUILD_ID, ROLE_ID, invalid_count, make_app_config, make_forwarding
from voterelay.database.engine import get_session
from voterelay.database.models import Vote, VoteSource
from voterelay.services.store import (
    get_application_config,
    get_forwarding_config,
    get_vote,
    increment_invalid_request_count,
    insert_vote,
)


def _vote(vote_id: int = 1) -> Vote:
    return Vote(
        id=vote_id,
        application_id=APP_ID,
        source="topgg",
        guild_id=GUILD_ID,
        user_id=42,
        role_id=ROLE_ID,
    )


class TestApplicationConfig:
    def test_lookup_by_source(self, db_engine):
        make_app_config(db_engine, source=VoteSource.TOPGG, secret="a")
        make_app_config(db_engine, source=VoteSource.DBL, secret="b")

        assert get_application_config(db_engine, APP_ID, VoteSource.TOPGG).secret == "a"
        assert get_application_config(db_engine, APP_ID, VoteSource.DBL).secret == "b"

    def test_lookup_without_source(self, db_engine):
        make_app_config(db_engine, source=VoteSource.DBL)
        cfg = get_application_config(db_engine, APP_ID)
        assert cfg.source == "dbl"
        assert cfg.ready_for_votes is True

    def test_missing(self, db_engine):
        assert get_application_config(db_engine, "404") is None

    def test_not_ready_without_role(self, db_engine):
        make_app_config(db_engine, vote_role_id=None)
        assert get_application_config(db_engine, APP_ID).ready_for_votes is False

    def test_increment_counts_every_source_row(self, db_engine):
        make_app_config(db_engine, source=VoteSource.TOPGG)
        make_app_config(db_engine, source=VoteSource.DBL)

        increment_invalid_request_count(db_engine, APP_ID)
        increment_invalid_request_count(db_engine, APP_ID)

        assert invalid_count(db_engine) == 2
        assert get_application_config(db_engine, APP_ID, VoteSource.DBL).invalid_request_count == 2


class TestInsertVote:
    def test_insert(self, db_engine):
        assert insert_vote(db_engine, _vote(7)) is True
        with get_session(db_engine) as session:
            assert session.get(Vote, 7).user_id == 42

    def test_duplicate_id_is_rejected(self, db_engine):
        assert insert_vote(db_engine, _vote(7)) is True
        assert insert_vote(db_engine, _vote(7)) is False
        with get_session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Vote)) == 1

    def test_vote_readable_after_insert(self, db_engine):
        vote = _vote(8)
        insert_vote(db_engine, vote)
        assert vote.id == 8
        assert vote.has_role is False

    def test_get_vote(self, db_engine):
        insert_vote(db_engine, _vote(9))
        stored = get_vote(db_engine, 9)
        assert stored.user_id == 42
        assert stored.has_role is False

    def test_get_missing_vote(self, db_engine):
        assert get_vote(db_engine, 404) is None


class TestForwardingConfig:
    def test_lookup(self, db_engine):
        make_forwarding(db_engine)
        fwd = get_forwarding_config(db_engine, APP_ID)
        assert fwd.target_url == "https://bot.example.com/votes"

    def test_missing(self, db_engine):
        assert get_forwarding_config(db_engine, APP_ID) is None
