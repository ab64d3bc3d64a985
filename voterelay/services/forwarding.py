"""
voterelay.services.forwarding — Forwarding envelopes
=====================================================

Owners can ask for every accepted vote to be re-sent to their own
endpoint.  Ingestion only *builds* the envelope and queues it; delivery,
decryption of the stored secret, and retries belong to the forwarding
worker, which uses :func:`retry_delay` for its backoff schedule.

Envelope shape on the ``forward-webhook`` queue::

    {
      "to": {"applicationId", "targetUrl", "secret", "iv"},
      "forwardingPayload": {"source", "payload", "timestamp"},
      "timestamp": "<ISO-8601>"
    }

``payload`` is the original JSON body exactly as the listing site sent it.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine

from voterelay.database.models import ForwardingConfig, VoteSource
from voterelay.engine.payloads import VotePayload
from voterelay.services.store import get_forwarding_config

logger = logging.getLogger(__name__)

# Seconds to wait before delivery attempt N (index = attempts so far)
FORWARD_RETRY_DELAYS: tuple[int, ...] = (0, 30, 60, 120, 300, 600, 1800, 3600)
_JITTER_RATIO = 0.1


def retry_delay(attempt: int, rng: random.Random | None = None) -> int | None:
    """Backoff for the given attempt number, plus up to 10% jitter.

    Returns ``None`` once the table is exhausted; the worker should then
    acknowledge and drop the message.
    """
    if attempt < 0 or attempt >= len(FORWARD_RETRY_DELAYS):
        return None
    base = FORWARD_RETRY_DELAYS[attempt]
    jitter = int(base * _JITTER_RATIO)
    return base + (rng or random).randint(0, jitter)


@dataclass(frozen=True, slots=True)
class ForwardingTarget:
    application_id: str
    target_url: str
    secret: str
    iv: str

    @classmethod
    def from_config(cls, cfg: ForwardingConfig) -> ForwardingTarget:
        return cls(
            application_id=cfg.application_id,
            target_url=cfg.target_url,
            secret=cfg.secret,
            iv=cfg.iv,
        )


@dataclass(frozen=True, slots=True)
class ForwardingEnvelope:
    to: ForwardingTarget
    source: VoteSource
    payload: dict[str, Any]
    timestamp: datetime

    def to_message(self) -> dict[str, Any]:
        stamp = self.timestamp.isoformat()
        return {
            "to": {
                "applicationId": self.to.application_id,
                "targetUrl": self.to.target_url,
                "secret": self.to.secret,
                "iv": self.to.iv,
            },
            "forwardingPayload": {
                "source": str(self.source),
                "payload": self.payload,
                "timestamp": stamp,
            },
            "timestamp": stamp,
        }


def build_forward_payload(
    engine: Engine,
    application_id: str,
    source: VoteSource,
    payload: VotePayload,
    now: Callable[[], datetime] | None = None,
) -> ForwardingEnvelope | None:
    """Wrap *payload* for the owner's forwarding target, if one is configured.

    Sync; call via ``run_db``.  Returns ``None`` when the application has
    no forwarding target — that is not an error.
    """
    cfg = get_forwarding_config(engine, application_id)
    if cfg is None:
        return None

    logger.debug("Forwarding %s vote for %s to %s", source, application_id, cfg.target_url)
    return ForwardingEnvelope(
        to=ForwardingTarget.from_config(cfg),
        source=VoteSource(source),
        payload=payload.raw,
        timestamp=(now or _utcnow)(),
    )


def _utcnow() -> datetime:
    return datetime.now(UTC)
