"""
voterelay.engine.payloads — Normalized vote payloads
=====================================================

Every inbound body is parsed into exactly one of three frozen dataclasses:

* :class:`TopGGv0Vote`  — legacy Top.gg bot webhook
* :class:`TopGGv1Event` — signed Top.gg v1 event (``vote.create`` / ``webhook.test``)
* :class:`DBLVote`      — discordbotlist.com vote

The variant is fixed by ``(source, version)`` at parse time and carried as
``payload.kind``; nothing downstream probes fields to guess the shape.
Only structure is checked here.  Business rules (role configured, test vs.
real) belong to the ingestion service.

Each payload keeps the decoded body in ``raw`` so forwarding can pass the
original on unmodified.
"""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import parse_qsl

from voterelay.database.models import VoteSource
from voterelay.errors import MalformedPayload

__all__ = [
    "PayloadKind",
    "ProtocolVersion",
    "TopGGv0Vote",
    "TopGGv1User",
    "TopGGv1Project",
    "TopGGv1VoteData",
    "TopGGv1Event",
    "DBLVote",
    "VotePayload",
    "decode_body",
    "normalize_payload",
    "parse_payload",
]

_SNOWFLAKE_RE = re.compile(r"\d{1,20}")
_MAX_SNOWFLAKE = (1 << 63) - 1


class ProtocolVersion(enum.StrEnum):
    V0 = "v0"
    V1 = "v1"


class PayloadKind(enum.StrEnum):
    """Discriminator for :data:`VotePayload`."""
    TOPGG_V0 = "topgg.v0"
    TOPGG_V1 = "topgg.v1"
    DBL = "dbl"


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TopGGv0Vote:
    kind: ClassVar[PayloadKind] = PayloadKind.TOPGG_V0
    TYPES: ClassVar[frozenset[str]] = frozenset({"upvote", "test"})

    user: str
    type: str
    bot: str | None = None
    guild: str | None = None
    is_weekend: bool = False
    query: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class TopGGv1User:
    platform_id: str
    id: str | None = None
    name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class TopGGv1Project:
    id: str | None = None
    type: str | None = None
    platform: str | None = None
    platform_id: str | None = None


@dataclass(frozen=True, slots=True)
class TopGGv1VoteData:
    user: TopGGv1User
    id: str | None = None
    project: TopGGv1Project = field(default_factory=TopGGv1Project)
    created_at: str | None = None
    expires_at: str | None = None
    weight: int = 1


@dataclass(frozen=True, slots=True)
class TopGGv1Event:
    kind: ClassVar[PayloadKind] = PayloadKind.TOPGG_V1
    TYPES: ClassVar[frozenset[str]] = frozenset({"vote.create", "webhook.test"})

    type: str
    data: TopGGv1VoteData
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class DBLVote:
    kind: ClassVar[PayloadKind] = PayloadKind.DBL

    id: str
    username: str | None = None
    avatar: str | None = None
    admin: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


VotePayload = TopGGv0Vote | TopGGv1Event | DBLVote


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------
def _require_mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedPayload(f"{where} must be a JSON object")
    return value


def _snowflake(value: Any, where: str) -> str:
    """Accept a Discord ID sent either as a string or a bare integer."""
    if isinstance(value, bool):
        raise MalformedPayload(f"{where} must be a Discord snowflake")
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str) or not _SNOWFLAKE_RE.fullmatch(value):
        raise MalformedPayload(f"{where} must be a Discord snowflake")
    # Stored in signed BIGINT columns
    if int(value) > _MAX_SNOWFLAKE:
        raise MalformedPayload(f"{where} is out of range")
    return value


def _optional_snowflake(value: Any, where: str) -> str | None:
    return None if value is None else _snowflake(value, where)


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _choice(value: Any, allowed: frozenset[str], where: str) -> str:
    if value not in allowed:
        raise MalformedPayload(f"{where} must be one of {sorted(allowed)}")
    return value


def _query_params(value: Any) -> dict[str, str]:
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    if isinstance(value, str) and value:
        return dict(parse_qsl(value.lstrip("?")))
    return {}


# ---------------------------------------------------------------------------
# Per-variant parsers
# ---------------------------------------------------------------------------
def _parse_topgg_v0(body: dict[str, Any]) -> TopGGv0Vote:
    return TopGGv0Vote(
        user=_snowflake(body.get("user"), "user"),
        type=_choice(body.get("type"), TopGGv0Vote.TYPES, "type"),
        bot=_optional_snowflake(body.get("bot"), "bot"),
        guild=_optional_snowflake(body.get("guild"), "guild"),
        is_weekend=bool(body.get("isWeekend", False)),
        query=_query_params(body.get("query")),
        raw=body,
    )


def _parse_topgg_v1(body: dict[str, Any]) -> TopGGv1Event:
    event_type = _choice(body.get("type"), TopGGv1Event.TYPES, "type")
    data = _require_mapping(body.get("data"), "data")
    user = _require_mapping(data.get("user"), "data.user")
    project = data.get("project") or {}
    if not isinstance(project, dict):
        raise MalformedPayload("data.project must be a JSON object")

    vote_id = _optional_snowflake(data.get("id"), "data.id")
    if event_type == "vote.create" and vote_id is None:
        raise MalformedPayload("data.id is required for vote.create")

    weight = data.get("weight", 1)
    if isinstance(weight, bool) or not isinstance(weight, int):
        raise MalformedPayload("data.weight must be an integer")

    return TopGGv1Event(
        type=event_type,
        data=TopGGv1VoteData(
            id=vote_id,
            user=TopGGv1User(
                platform_id=_snowflake(user.get("platform_id"), "data.user.platform_id"),
                id=_optional_str(user.get("id")),
                name=_optional_str(user.get("name")),
                avatar_url=_optional_str(user.get("avatar_url")),
            ),
            project=TopGGv1Project(
                id=_optional_str(project.get("id")),
                type=_optional_str(project.get("type")),
                platform=_optional_str(project.get("platform")),
                platform_id=_optional_str(project.get("platform_id")),
            ),
            created_at=_optional_str(data.get("created_at")),
            expires_at=_optional_str(data.get("expires_at")),
            weight=weight,
        ),
        raw=body,
    )


def _parse_dbl(body: dict[str, Any]) -> DBLVote:
    return DBLVote(
        id=_snowflake(body.get("id"), "id"),
        username=_optional_str(body.get("username")),
        avatar=_optional_str(body.get("avatar")),
        admin=bool(body.get("admin", False)),
        raw=body,
    )


_PARSERS = {
    (VoteSource.TOPGG, ProtocolVersion.V0): _parse_topgg_v0,
    (VoteSource.TOPGG, ProtocolVersion.V1): _parse_topgg_v1,
    (VoteSource.DBL, ProtocolVersion.V0): _parse_dbl,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def decode_body(raw_body: str | bytes) -> dict[str, Any]:
    """Decode a request body as a JSON object or raise :class:`MalformedPayload`."""
    try:
        decoded = json.loads(raw_body)
    except (ValueError, RecursionError) as exc:
        # ValueError covers JSONDecodeError, UnicodeDecodeError and the
        # int-string digit limit; RecursionError comes from deep nesting
        raise MalformedPayload(f"Body is not valid JSON: {exc}") from exc
    return _require_mapping(decoded, "body")


def normalize_payload(
    body: dict[str, Any],
    source: VoteSource,
    version: ProtocolVersion,
) -> VotePayload:
    """Build the typed payload for an already-decoded JSON object."""
    parser = _PARSERS.get((VoteSource(source), ProtocolVersion(version)))
    if parser is None:
        raise MalformedPayload(f"{source} does not send {version} webhooks")
    return parser(_require_mapping(body, "body"))


def parse_payload(
    raw_body: str | bytes,
    source: VoteSource,
    version: ProtocolVersion,
) -> VotePayload:
    """Decode *raw_body* and normalize it in one step."""
    return normalize_payload(decode_body(raw_body), source, version)
