"""
voterelay.services.queues — Outbound job queues
================================================

Ingestion hands work to external consumers through two named queues:

* ``vote-apply``      — role-application jobs ``{"id", "timestamp"}``
* ``forward-webhook`` — forwarding envelopes (see :mod:`.forwarding`)

Two interchangeable backends implement :class:`MessageQueue`:
:class:`DatabaseQueue` appends to the ``queued_messages`` outbox table,
:class:`InMemoryQueue` wraps an :class:`asyncio.Queue` for local runs and
tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from sqlalchemy import Engine, select

from voterelay.database.engine import get_session, run_db
from voterelay.database.models import QueuedMessage

logger = logging.getLogger(__name__)

ROLE_APPLY_QUEUE = "vote-apply"
FORWARD_QUEUE = "forward-webhook"


class MessageQueue(Protocol):
    name: str

    async def send(self, body: dict[str, Any]) -> None: ...


class InMemoryQueue:
    """Process-local queue.  Messages are lost on restart."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def send(self, body: dict[str, Any]) -> None:
        self._queue.put_nowait(body)
        logger.debug("Queued message on %s (%d pending)", self.name, self._queue.qsize())

    async def receive(self) -> dict[str, Any]:
        return await self._queue.get()

    def drain(self) -> list[dict[str, Any]]:
        """Remove and return every pending message without waiting."""
        messages: list[dict[str, Any]] = []
        while not self._queue.empty():
            messages.append(self._queue.get_nowait())
        return messages

    def __len__(self) -> int:
        return self._queue.qsize()


class DatabaseQueue:
    """Durable queue backed by the ``queued_messages`` table."""

    def __init__(self, engine: Engine, name: str) -> None:
        self.engine = engine
        self.name = name

    def _insert(self, body: dict[str, Any]) -> int:
        with get_session(self.engine) as session:
            row = QueuedMessage(queue=self.name, body=body)
            session.add(row)
            session.flush()
            return row.id

    async def send(self, body: dict[str, Any]) -> None:
        message_id = await run_db(self._insert, body)
        logger.debug("Queued message %d on %s", message_id, self.name)

    def pending(self, limit: int = 100) -> list[dict[str, Any]]:
        """Oldest-first bodies still in the outbox (sync; use via run_db)."""
        with get_session(self.engine) as session:
            return list(session.scalars(
                select(QueuedMessage.body)
                .where(QueuedMessage.queue == self.name)
                .order_by(QueuedMessage.created_at.asc(), QueuedMessage.id.asc())
                .limit(limit)
            ).all())
