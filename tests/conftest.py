"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import Engine, create_engine, select

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from voterelay.database.engine import get_session
from voterelay.database.models import ApplicationConfig, Base, ForwardingConfig, VoteSource
from voterelay.engine.signature import compute_signature
from voterelay.engine.snowflake import SnowflakeGenerator
from voterelay.services.background import DetachedTasks
from voterelay.services.ingestion import VoteIngestionService
from voterelay.services.notifications import TestVoteNotifier
from voterelay.services.queues import FORWARD_QUEUE, ROLE_APPLY_QUEUE, InMemoryQueue

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# ---------------------------------------------------------------------------
# Constants shared by the ingestion and route tests
# ---------------------------------------------------------------------------
APP_ID = "1300000000000000001"
GUILD_ID = 1300000000000000100
ROLE_ID = 1300000000000000200
VOTER_ID = "1300000000000000300"
SECRET = "whs_test_secret"
FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all voterelay tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def make_app_config(
    engine: Engine,
    *,
    application_id: str = APP_ID,
    source: VoteSource = VoteSource.TOPGG,
    secret: str | None = SECRET,
    guild_id: int | None = GUILD_ID,
    vote_role_id: int | None = ROLE_ID,
    role_duration_seconds: int | None = None,
) -> None:
    with get_session(engine) as session:
        session.add(ApplicationConfig(
            application_id=application_id,
            source=str(source),
            secret=secret,
            guild_id=guild_id,
            vote_role_id=vote_role_id,
            role_duration_seconds=role_duration_seconds,
            invalid_request_count=0,
        ))


def make_forwarding(
    engine: Engine,
    *,
    application_id: str = APP_ID,
    target_url: str = "https://bot.example.com/votes",
) -> None:
    with get_session(engine) as session:
        session.add(ForwardingConfig(
            application_id=application_id,
            target_url=target_url,
            secret="ZW5jcnlwdGVkLXNlY3JldA==",
            iv="00112233445566778899aabbccddeeff",
        ))


def invalid_count(engine: Engine, application_id: str = APP_ID) -> int:
    with get_session(engine) as session:
        rows = session.scalars(
            select(ApplicationConfig).where(ApplicationConfig.application_id == application_id)
        ).all()
        return max(row.invalid_request_count for row in rows)


def topgg_v1_body(event_type: str = "vote.create", vote_id: str = "1400000000000000001") -> bytes:
    data = {
        "user": {"id": "tg_user_1", "platform_id": VOTER_ID, "name": "voter"},
        "project": {"id": "tg_proj_1", "type": "bot", "platform": "discord", "platform_id": APP_ID},
        "weight": 1,
        "created_at": "2026-03-01T12:00:00Z",
        "expires_at": "2026-03-02T00:00:00Z",
    }
    if event_type == "vote.create":
        data["id"] = vote_id
    return json.dumps({"type": event_type, "data": data}).encode()


def topgg_v0_body(vote_type: str = "upvote") -> bytes:
    return json.dumps({
        "bot": APP_ID,
        "user": VOTER_ID,
        "type": vote_type,
        "isWeekend": False,
        "query": "?ref=website",
    }).encode()


def dbl_body() -> bytes:
    return json.dumps({
        "id": VOTER_ID,
        "username": "voter",
        "avatar": "a_1234",
        "admin": False,
    }).encode()


def v1_headers(body: bytes, *, secret: str = SECRET, timestamp: str = "1772366400") -> dict[str, str]:
    signature = compute_signature(secret, timestamp, body)
    return {"x-topgg-signature": f"t={timestamp},v1={signature}"}


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------
@pytest.fixture
def role_queue() -> InMemoryQueue:
    return InMemoryQueue(ROLE_APPLY_QUEUE)


@pytest.fixture
def forward_queue() -> InMemoryQueue:
    return InMemoryQueue(FORWARD_QUEUE)


@pytest.fixture
def notifier() -> MagicMock:
    mock = MagicMock(spec=TestVoteNotifier)
    mock.notify = AsyncMock()
    return mock


@pytest.fixture
def tasks() -> DetachedTasks:
    return DetachedTasks()


@pytest.fixture
def service(db_engine, role_queue, forward_queue, notifier, tasks) -> VoteIngestionService:
    return VoteIngestionService(
        engine=db_engine,
        role_queue=role_queue,
        forward_queue=forward_queue,
        notifier=notifier,
        tasks=tasks,
        id_generator=SnowflakeGenerator(worker_id=1, process_id=1),
        clock=lambda: FIXED_NOW,
    )
