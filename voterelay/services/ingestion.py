"""
voterelay.services.ingestion — Vote ingestion pipeline
=======================================================

One delivery from a listing site flows through a single control shape,
whatever the source::

    lookup config ─► secret on file? ─► validate ─► test vote? ─► role configured?
        │ 404           │ 404 (+count)     │ 4xx (+count)  │ DM, ack      │ 400 (+count)
        ▼
    mint/extract vote ID ─► insert vote ─► enqueue role job ─► forward (detached) ─► ack

Source-specific questions (is this a test? who voted? does the site give
us a vote ID? 200 or 204?) are answered by a small handler class per
payload variant; everything else is shared.

Three side effects are *detached* and never change the response: the
invalid-request counter, the test-vote DM and forwarding.  Storage or
queue outages surface as :class:`~voterelay.errors.TransientFailure`
(503) so the listing site redelivers.

Idempotency: Top.gg v1 supplies its own vote ID, which becomes the
primary key, so a redelivered event is acknowledged without a second row.
While the stored vote still has ``has_role = False`` the redelivery queues
the role job again: the earlier attempt may have written the row and then
failed to enqueue (a 503).  The role worker is keyed on the vote ID, so a
repeated job for an already-queued vote is harmless.  Top.gg v0 and DBL
deliveries get a fresh snowflake every time, so a redelivery of those
creates a second row.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import ClassVar

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from voterelay.database.engine import run_db
from voterelay.database.models import ApplicationConfig, Vote, VoteSource
from voterelay.engine.payloads import (
    DBLVote,
    PayloadKind,
    TopGGv0Vote,
    TopGGv1Event,
    VotePayload,
)
from voterelay.engine.snowflake import SnowflakeGenerator
from voterelay.engine.validator import Rejected, WebhookRequest, WebhookValidator
from voterelay.errors import NotConfigured, TransientFailure, UnknownApplication
from voterelay.services.background import DetachedTasks
from voterelay.services.forwarding import build_forward_payload
from voterelay.services.notifications import TestVoteNotifier
from voterelay.services.queues import MessageQueue
from voterelay.services.store import (
    get_application_config,
    get_vote,
    increment_invalid_request_count,
    insert_vote,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-variant handlers
# ---------------------------------------------------------------------------
class SourceHandler(ABC):
    """Answers the source-specific questions about one payload variant."""

    kind: ClassVar[PayloadKind]
    ack_status: ClassVar[int] = 200

    def is_test(self, payload: VotePayload) -> bool:
        return False

    @abstractmethod
    def voter_id(self, payload: VotePayload) -> str:
        ...

    def external_vote_id(self, payload: VotePayload) -> int | None:
        """Vote ID assigned by the listing site, if it sends a reliable one."""
        return None


class TopGGV0Handler(SourceHandler):
    kind = PayloadKind.TOPGG_V0

    def is_test(self, payload: TopGGv0Vote) -> bool:
        return payload.type == "test"

    def voter_id(self, payload: TopGGv0Vote) -> str:
        return payload.user


class TopGGV1Handler(SourceHandler):
    kind = PayloadKind.TOPGG_V1
    ack_status = 204

    def is_test(self, payload: TopGGv1Event) -> bool:
        return payload.type == "webhook.test"

    def voter_id(self, payload: TopGGv1Event) -> str:
        return payload.data.user.platform_id

    def external_vote_id(self, payload: TopGGv1Event) -> int | None:
        return int(payload.data.id) if payload.data.id is not None else None


class DBLHandler(SourceHandler):
    kind = PayloadKind.DBL

    def voter_id(self, payload: DBLVote) -> str:
        return payload.id


HANDLERS: dict[PayloadKind, SourceHandler] = {
    handler.kind: handler
    for handler in (TopGGV0Handler(), TopGGV1Handler(), DBLHandler())
}


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class IngestionResult:
    """Successful outcome; the route answers ``status_code`` with no body."""

    status_code: int
    vote_id: int | None = None
    test: bool = False
    duplicate: bool = False


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class VoteIngestionService:
    """Turn authenticated webhook deliveries into votes and queued jobs.

    Parameters
    ----------
    engine:
        Database holding application configs, votes and forwarding targets.
    role_queue:
        Receives ``{"id", "timestamp"}`` role-application jobs.
    forward_queue:
        Receives forwarding envelopes.
    notifier:
        Sends the test-vote DM.
    tasks:
        Owner of every detached side effect.
    validator:
        Defaults to a :class:`WebhookValidator` with no replay window.
    id_generator:
        Mints vote IDs for sources that do not supply one.
    clock:
        Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        engine: Engine,
        role_queue: MessageQueue,
        forward_queue: MessageQueue,
        notifier: TestVoteNotifier,
        tasks: DetachedTasks,
        validator: WebhookValidator | None = None,
        id_generator: SnowflakeGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.engine = engine
        self.role_queue = role_queue
        self.forward_queue = forward_queue
        self.notifier = notifier
        self.tasks = tasks
        self.validator = validator or WebhookValidator()
        self.id_generator = id_generator or SnowflakeGenerator()
        self.clock = clock or (lambda: datetime.now(UTC))

    # -----------------------------------------------------------------------
    # Entry points, one per listing site
    # -----------------------------------------------------------------------
    async def handle_topgg(
        self, application_id: str, headers: Mapping[str, str], body: bytes,
    ) -> IngestionResult:
        """Top.gg v0 or v1; the version is read from the headers."""
        return await self.ingest(VoteSource.TOPGG, application_id, WebhookRequest.build(headers, body))

    async def handle_dbl(
        self, application_id: str, headers: Mapping[str, str], body: bytes,
    ) -> IngestionResult:
        return await self.ingest(VoteSource.DBL, application_id, WebhookRequest.build(headers, body))

    # -----------------------------------------------------------------------
    # Shared pipeline
    # -----------------------------------------------------------------------
    async def ingest(
        self, source: VoteSource, application_id: str, request: WebhookRequest,
    ) -> IngestionResult:
        cfg = await self._load_config(application_id, source)
        if cfg is None:
            logger.info("Webhook for unknown application %s (%s)", application_id, source)
            raise UnknownApplication()

        if not cfg.secret:
            # Same answer as "unknown" so probing IDs reveals nothing
            logger.warning("Webhook for %s (%s) but no secret is configured", application_id, source)
            self._flag_invalid(application_id)
            raise UnknownApplication()

        result = self.validator.validate(request, cfg.secret, source)
        if isinstance(result, Rejected):
            logger.warning(
                "Rejected %s webhook for %s: %s", source, application_id, result.reason,
            )
            self._flag_invalid(application_id)
            raise result.reason.to_error()

        payload = result.payload
        handler = HANDLERS[payload.kind]
        voter = handler.voter_id(payload)

        if handler.is_test(payload):
            logger.info("Test vote from %s for %s (%s)", voter, application_id, source)
            self.tasks.spawn(
                self.notifier.notify(application_id, voter, source),
                name=f"test-vote-dm:{application_id}",
            )
            return IngestionResult(status_code=handler.ack_status, test=True)

        if not cfg.ready_for_votes:
            logger.warning(
                "Vote for %s (%s) but no guild/role is configured", application_id, source,
            )
            self._flag_invalid(application_id)
            raise NotConfigured()

        vote = self._build_vote(cfg, handler, payload, voter)
        inserted = await self._insert(vote)
        if not inserted:
            await self._requeue_unapplied(vote.id)
            return IngestionResult(
                status_code=handler.ack_status, vote_id=vote.id, duplicate=True,
            )

        await self._enqueue_role_job(vote)
        self.tasks.spawn(
            self._forward(application_id, source, payload),
            name=f"forward:{application_id}",
        )
        logger.info(
            "Recorded %s vote %d by %s for %s", source, vote.id, voter, application_id,
        )
        return IngestionResult(status_code=handler.ack_status, vote_id=vote.id)

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------
    def _build_vote(
        self,
        cfg: ApplicationConfig,
        handler: SourceHandler,
        payload: VotePayload,
        voter: str,
    ) -> Vote:
        vote_id = handler.external_vote_id(payload)
        if vote_id is None:
            vote_id = self.id_generator.generate()

        now = self.clock()
        expires_at = (
            now + timedelta(seconds=cfg.role_duration_seconds)
            if cfg.role_duration_seconds
            else None
        )
        return Vote(
            id=vote_id,
            application_id=cfg.application_id,
            source=cfg.source,
            guild_id=cfg.guild_id,
            user_id=int(voter),
            role_id=cfg.vote_role_id,
            has_role=False,
            expires_at=expires_at,
            created_at=now,
        )

    async def _load_config(
        self, application_id: str, source: VoteSource,
    ) -> ApplicationConfig | None:
        try:
            return await run_db(get_application_config, self.engine, application_id, source)
        except SQLAlchemyError as exc:
            logger.error("Config lookup failed for %s: %s", application_id, exc)
            raise TransientFailure() from exc

    async def _insert(self, vote: Vote) -> bool:
        try:
            return await run_db(insert_vote, self.engine, vote)
        except SQLAlchemyError as exc:
            logger.error("Vote insert failed for %s: %s", vote.application_id, exc)
            raise TransientFailure() from exc

    async def _enqueue_role_job(self, vote: Vote) -> None:
        body = {"id": str(vote.id), "timestamp": vote.created_at.isoformat()}
        try:
            await self.role_queue.send(body)
        except SQLAlchemyError as exc:
            logger.error("Could not queue role job for vote %d: %s", vote.id, exc)
            raise TransientFailure() from exc

    async def _requeue_unapplied(self, vote_id: int) -> None:
        """Queue the role job again for a redelivered vote not yet applied."""
        try:
            stored = await run_db(get_vote, self.engine, vote_id)
        except SQLAlchemyError as exc:
            logger.error("Lookup of redelivered vote %d failed: %s", vote_id, exc)
            raise TransientFailure() from exc
        if stored is None or stored.has_role:
            return
        logger.info("Vote %d redelivered before its role was applied, queueing again", vote_id)
        await self._enqueue_role_job(stored)

    async def _forward(
        self, application_id: str, source: VoteSource, payload: VotePayload,
    ) -> None:
        envelope = await run_db(
            build_forward_payload, self.engine, application_id, source, payload, self.clock,
        )
        if envelope is None:
            return
        await self.forward_queue.send(envelope.to_message())
        logger.debug("Queued forward of %s vote for %s", source, application_id)

    def _flag_invalid(self, application_id: str) -> None:
        self.tasks.spawn(
            run_db(increment_invalid_request_count, self.engine, application_id),
            name=f"invalid-count:{application_id}",
        )
