"""
voterelay.api.deps — FastAPI dependency injection
==================================================

Everything the webhook routes need is built once per process and cached.
Tests swap any of these out through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Engine

from voterelay.config import RelayConfig, load_config
from voterelay.database.engine import create_db_engine
from voterelay.engine.snowflake import SnowflakeGenerator
from voterelay.engine.validator import WebhookValidator
from voterelay.services.background import DetachedTasks
from voterelay.services.ingestion import VoteIngestionService
from voterelay.services.notifications import TestVoteNotifier
from voterelay.services.queues import (
    FORWARD_QUEUE,
    ROLE_APPLY_QUEUE,
    DatabaseQueue,
    InMemoryQueue,
    MessageQueue,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> RelayConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_tasks() -> DetachedTasks:
    return DetachedTasks()


def build_queue(cfg: RelayConfig, engine: Engine, name: str) -> MessageQueue:
    if cfg.queue_backend == "memory":
        logger.warning("Queue %s is in-memory; jobs are lost on restart", name)
        return InMemoryQueue(name)
    return DatabaseQueue(engine, name)


def build_ingestion_service(
    cfg: RelayConfig, engine: Engine, tasks: DetachedTasks,
) -> VoteIngestionService:
    """Wire a :class:`VoteIngestionService` from configuration."""
    return VoteIngestionService(
        engine=engine,
        role_queue=build_queue(cfg, engine, ROLE_APPLY_QUEUE),
        forward_queue=build_queue(cfg, engine, FORWARD_QUEUE),
        notifier=TestVoteNotifier(
            token=os.getenv("DISCORD_TOKEN"),
            timeout=cfg.notify_timeout_seconds,
        ),
        tasks=tasks,
        validator=WebhookValidator(tolerance_seconds=cfg.signature_tolerance_seconds),
        id_generator=SnowflakeGenerator(epoch=cfg.vote_id_epoch, worker_id=cfg.worker_id),
    )


@lru_cache(maxsize=1)
def _cached_ingestion_service() -> VoteIngestionService:
    return build_ingestion_service(get_config(), get_engine(), get_tasks())


def get_ingestion_service() -> VoteIngestionService:
    return _cached_ingestion_service()


IngestionService = Annotated[VoteIngestionService, Depends(get_ingestion_service)]
