"""
voterelay.services.store — Configuration & vote persistence
============================================================

Synchronous helpers; call them through
:func:`voterelay.database.engine.run_db`.  Loaded rows are expunged so
callers can read them after the session closes.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from voterelay.database.engine import get_session
from voterelay.database.models import ApplicationConfig, ForwardingConfig, Vote, VoteSource

logger = logging.getLogger(__name__)


def get_application_config(
    engine: Engine,
    application_id: str,
    source: VoteSource | None = None,
) -> ApplicationConfig | None:
    """Fetch the config row for *application_id* (and *source*, if given)."""
    stmt = select(ApplicationConfig).where(
        ApplicationConfig.application_id == application_id
    )
    if source is not None:
        stmt = stmt.where(ApplicationConfig.source == str(source))
    with get_session(engine) as session:
        cfg = session.scalars(stmt.order_by(ApplicationConfig.source).limit(1)).first()
        if cfg is not None:
            session.expunge(cfg)
        return cfg


def increment_invalid_request_count(engine: Engine, application_id: str) -> None:
    """Bump the abuse counter on every config row of *application_id*."""
    with get_session(engine) as session:
        session.execute(
            update(ApplicationConfig)
            .where(ApplicationConfig.application_id == application_id)
            .values(invalid_request_count=ApplicationConfig.invalid_request_count + 1)
        )


def insert_vote(engine: Engine, vote: Vote) -> bool:
    """Persist *vote*.  Returns ``False`` if a vote with the same ID exists.

    The primary key is the uniqueness guarantee: a redelivered Top.gg v1
    event carries the same ID and is reported as a duplicate instead of
    producing a second row.
    """
    with Session(engine, expire_on_commit=False) as session:
        if session.get(Vote, vote.id) is not None:
            logger.info("Vote %s already recorded, skipping duplicate", vote.id)
            return False
        session.add(vote)
        try:
            session.commit()
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same event
            session.rollback()
            logger.info("Vote %s inserted concurrently, skipping duplicate", vote.id)
            return False
    return True


def get_vote(engine: Engine, vote_id: int) -> Vote | None:
    with get_session(engine) as session:
        vote = session.get(Vote, vote_id)
        if vote is not None:
            session.expunge(vote)
        return vote


def get_forwarding_config(engine: Engine, application_id: str) -> ForwardingConfig | None:
    with get_session(engine) as session:
        fwd = session.get(ForwardingConfig, application_id)
        if fwd is not None:
            session.expunge(fwd)
        return fwd
