"""
voterelay.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- applications     — Per-(application, source) webhook configuration
- votes            — One row per accepted, non-test vote
- forwardings      — Optional per-application forwarding target
- queued_messages  — Durable outbox for the database queue backend
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all voterelay ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class VoteSource(enum.StrEnum):
    """Listing sites that can deliver vote webhooks."""
    TOPGG = "topgg"
    DBL = "dbl"


# ---------------------------------------------------------------------------
# ApplicationConfig: one row per (application, source)
# ---------------------------------------------------------------------------
class ApplicationConfig(Base):
    """Inbound webhook configuration for one bot on one listing site.

    ``secret`` must be set before any webhook validates.  ``guild_id`` and
    ``vote_role_id`` must be set before a real vote can be queued for
    role application.
    """
    __tablename__ = "applications"

    application_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    source: Mapped[str] = mapped_column(String(10), primary_key=True)
    secret: Mapped[str | None] = mapped_column(Text, default=None)
    guild_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    vote_role_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    role_duration_seconds: Mapped[int | None] = mapped_column(Integer, default=None)
    invalid_request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_applications_guild_id", "guild_id"),
    )

    @property
    def ready_for_votes(self) -> bool:
        return self.guild_id is not None and self.vote_role_id is not None

    def __repr__(self) -> str:
        return f"<ApplicationConfig app={self.application_id} source={self.source!r}>"


# ---------------------------------------------------------------------------
# Vote: one row per accepted vote event
# ---------------------------------------------------------------------------
class Vote(Base):
    """An accepted vote awaiting (or holding) a role grant.

    The primary key doubles as the idempotency key for sources that send
    a globally unique vote ID (Top.gg v1).  ``has_role`` is flipped by the
    role-application worker, never by ingestion.
    """
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    application_id: Mapped[str] = mapped_column(String(32), nullable=False)
    source: Mapped[str] = mapped_column(String(10), nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    has_role: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_votes_member_role", "guild_id", "user_id", "role_id"),
        Index("ix_votes_expires_at", "expires_at"),
        Index("ix_votes_application", "application_id", "source"),
    )

    def __repr__(self) -> str:
        return f"<Vote id={self.id} app={self.application_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# ForwardingConfig: at most one forwarding target per application
# ---------------------------------------------------------------------------
class ForwardingConfig(Base):
    """Where to re-send accepted votes for one application.

    ``secret`` is stored encrypted; ``iv`` is the initialization vector the
    forwarding worker needs to decrypt it.  Ingestion never decrypts.
    """
    __tablename__ = "forwardings"

    application_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    target_url: Mapped[str] = mapped_column(String(500), nullable=False)
    secret: Mapped[str] = mapped_column(Text, nullable=False)
    iv: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ForwardingConfig app={self.application_id} url={self.target_url!r}>"


# ---------------------------------------------------------------------------
# QueuedMessage: outbox rows for the database queue backend
# ---------------------------------------------------------------------------
class QueuedMessage(Base):
    __tablename__ = "queued_messages"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    queue: Mapped[str] = mapped_column(String(50), nullable=False)
    body: Mapped[dict] = mapped_column(JSONB, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_queued_messages_queue_created", "queue", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<QueuedMessage id={self.id} queue={self.queue!r}>"
