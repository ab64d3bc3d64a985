"""
voterelay.config — YAML Configuration Loader
=============================================

``config.yaml`` holds **infrastructure-only** settings (listen address,
queue backend, vote ID layout).  Secrets never go here: ``DATABASE_URL``
and ``DISCORD_TOKEN`` come from the environment (``.env``).

Usage::

    from voterelay.config import load_config

    cfg = load_config()            # $VOTERELAY_CONFIG or ./config.yaml
    print(cfg.public_base_url)     # "https://votes.example.com"
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import yaml

from voterelay.engine.snowflake import VOTE_ID_EPOCH

CONFIG_ENV_VAR = "VOTERELAY_CONFIG"
QUEUE_BACKENDS = frozenset({"database", "memory"})


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RelayConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    service_name: str

    # HTTP
    host: str
    port: int
    public_base_url: str  # Base of the webhook URLs shown to owners

    # Queues
    queue_backend: str = "database"

    # Vote IDs
    vote_id_epoch: datetime = VOTE_ID_EPOCH
    worker_id: int = 0

    # Side effects
    notify_timeout_seconds: float = 5.0

    # Optional v1 replay window; None disables the check
    signature_tolerance_seconds: int | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> RelayConfig:
    """Read *path* and return a :class:`RelayConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$VOTERELAY_CONFIG``, then ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``queue_backend`` is not one of ``database`` / ``memory``.
    """
    config_path = Path(path or os.getenv(CONFIG_ENV_VAR) or "config.yaml")
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    queue_backend = raw.get("queue_backend", "database")
    if queue_backend not in QUEUE_BACKENDS:
        raise ValueError(
            f"queue_backend must be one of {sorted(QUEUE_BACKENDS)}, got {queue_backend!r}"
        )

    return RelayConfig(
        service_name=raw["service_name"],
        host=raw["host"],
        port=int(raw["port"]),
        public_base_url=str(raw["public_base_url"]).rstrip("/"),
        queue_backend=queue_backend,
        vote_id_epoch=_parse_epoch(raw.get("vote_id_epoch")),
        worker_id=int(raw.get("worker_id", 0)),
        notify_timeout_seconds=float(raw.get("notify_timeout_seconds", 5)),
        signature_tolerance_seconds=(
            int(raw["signature_tolerance_seconds"])
            if raw.get("signature_tolerance_seconds")
            else None
        ),
    )


def _parse_epoch(value) -> datetime:
    if value is None:
        return VOTE_ID_EPOCH
    # PyYAML already turns unquoted timestamps into datetimes
    if isinstance(value, datetime):
        stamp = value
    else:
        stamp = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if stamp.tzinfo is None:
        raise ValueError("vote_id_epoch must include a UTC offset")
    return stamp
