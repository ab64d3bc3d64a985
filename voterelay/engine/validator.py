"""
voterelay.engine.validator — Webhook authentication & version detection
=========================================================================

One request walks a tiny, unpersisted state machine::

    Start → DetectVersion → (V0 | V1) → Accepted | Rejected

* **DetectVersion** looks only at headers.  ``x-topgg-signature`` (or the
  ``x-topgg-trace`` header Top.gg attaches to v1 deliveries) selects v1;
  otherwise the legacy v0 scheme applies.  Only Top.gg speaks v1.
* **V1** parses ``t=<ts>,v1=<hex>``, then checks the HMAC of the exact raw
  body bytes before decoding JSON.
* **V0** compares the ``authorization`` header to the secret with plain
  ``==``.  This legacy scheme is being phased out and keeps its original
  comparison.

The validator never raises for bad input; it returns :class:`Rejected`
with a :class:`RejectReason`, and the caller decides the HTTP status.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from voterelay.database.models import VoteSource
from voterelay.engine.payloads import ProtocolVersion, VotePayload, parse_payload
from voterelay.engine.signature import verify_signature
from voterelay.errors import (
    AuthenticationFailure,
    IngestionError,
    MalformedPayload,
    MalformedSignatureHeader,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-topgg-signature"
TRACE_HEADER = "x-topgg-trace"
AUTHORIZATION_HEADER = "authorization"


class FailureKind(enum.StrEnum):
    AUTHENTICATION_FAILURE = "authentication_failure"
    MALFORMED_INPUT = "malformed_input"


class RejectReason(enum.StrEnum):
    MALFORMED_SIGNATURE_HEADER = "malformed_signature_header"
    NO_SECRET_CONFIGURED = "no_secret_configured"
    SIGNATURE_MISMATCH = "signature_mismatch"
    STALE_TIMESTAMP = "stale_timestamp"
    AUTHORIZATION_MISMATCH = "authorization_mismatch"
    MALFORMED_PAYLOAD = "malformed_payload"

    @property
    def kind(self) -> FailureKind:
        if self in (RejectReason.MALFORMED_SIGNATURE_HEADER, RejectReason.MALFORMED_PAYLOAD):
            return FailureKind.MALFORMED_INPUT
        return FailureKind.AUTHENTICATION_FAILURE

    def to_error(self) -> IngestionError:
        if self is RejectReason.MALFORMED_SIGNATURE_HEADER:
            return MalformedSignatureHeader()
        if self is RejectReason.MALFORMED_PAYLOAD:
            return MalformedPayload()
        return AuthenticationFailure()


# ---------------------------------------------------------------------------
# Request / outcome types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WebhookRequest:
    """Transport-independent view of one inbound delivery."""

    headers: Mapping[str, str]
    body: bytes

    @classmethod
    def build(cls, headers: Mapping[str, str], body: bytes | str) -> WebhookRequest:
        """Lower-case header names so lookups match HTTP semantics."""
        raw = body.encode("utf-8") if isinstance(body, str) else body
        return cls(headers={k.lower(): v for k, v in headers.items()}, body=raw)

    def header(self, name: str) -> str | None:
        return self.headers.get(name)


@dataclass(frozen=True, slots=True)
class Accepted:
    payload: VotePayload
    version: ProtocolVersion


@dataclass(frozen=True, slots=True)
class Rejected:
    reason: RejectReason

    @property
    def kind(self) -> FailureKind:
        return self.reason.kind


ValidationResult = Accepted | Rejected


def parse_signature_header(value: str) -> dict[str, list[str]]:
    """Split ``t=123,v1=abcd`` into ``{"t": ["123"], "v1": ["abcd"]}``.

    Keys may repeat, e.g. several ``v1`` signatures while a secret is
    being rotated.
    """
    fields: dict[str, list[str]] = {}
    for part in value.split(","):
        key, sep, val = part.strip().partition("=")
        if sep:
            fields.setdefault(key.strip(), []).append(val.strip())
    return fields


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------
class WebhookValidator:
    """Authenticate and normalize one webhook delivery.

    Parameters
    ----------
    tolerance_seconds:
        When set, v1 timestamps further than this from *clock* are rejected
        as replays.  ``None`` disables the check.
    clock:
        Returns current Unix time in seconds.
    """

    def __init__(
        self,
        tolerance_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.tolerance_seconds = tolerance_seconds
        self.clock = clock

    def detect_version(self, request: WebhookRequest, source: VoteSource) -> ProtocolVersion:
        if source != VoteSource.TOPGG:
            return ProtocolVersion.V0
        if request.header(SIGNATURE_HEADER) is not None or request.header(TRACE_HEADER) is not None:
            return ProtocolVersion.V1
        return ProtocolVersion.V0

    def validate(
        self,
        request: WebhookRequest,
        secret: str | None,
        source: VoteSource,
    ) -> ValidationResult:
        version = self.detect_version(request, source)
        logger.debug(
            "Validating %s webhook (%s), trace=%s",
            source, version, request.header(TRACE_HEADER),
        )
        if version is ProtocolVersion.V1:
            return self._validate_v1(request, secret, source)
        return self._validate_v0(request, secret, source)

    # -----------------------------------------------------------------------
    # v1: HMAC-signed
    # -----------------------------------------------------------------------
    def _validate_v1(
        self, request: WebhookRequest, secret: str | None, source: VoteSource,
    ) -> ValidationResult:
        fields = parse_signature_header(request.header(SIGNATURE_HEADER) or "")
        timestamp = fields.get("t", [""])[-1]
        signatures = [sig for sig in fields.get("v1", []) if sig]
        if not timestamp or not signatures:
            return Rejected(RejectReason.MALFORMED_SIGNATURE_HEADER)

        raw_body = request.body

        if not secret:
            return Rejected(RejectReason.NO_SECRET_CONFIGURED)

        if self.tolerance_seconds is not None and not self._fresh(timestamp):
            return Rejected(RejectReason.STALE_TIMESTAMP)

        logger.debug(
            "Checking %d v1 signature(s), first %s… (t=%s)",
            len(signatures), signatures[0][:8], timestamp,
        )
        if not any(verify_signature(sig, timestamp, raw_body, secret) for sig in signatures):
            return Rejected(RejectReason.SIGNATURE_MISMATCH)

        try:
            payload = parse_payload(raw_body, source, ProtocolVersion.V1)
        except MalformedPayload as exc:
            logger.info("Rejected signed v1 body: %s", exc.message)
            return Rejected(RejectReason.MALFORMED_PAYLOAD)
        return Accepted(payload=payload, version=ProtocolVersion.V1)

    def _fresh(self, timestamp: str) -> bool:
        if not (timestamp.isascii() and timestamp.isdigit()):
            return False
        return abs(self.clock() - int(timestamp)) <= self.tolerance_seconds

    # -----------------------------------------------------------------------
    # v0: shared-secret authorization header
    # -----------------------------------------------------------------------
    def _validate_v0(
        self, request: WebhookRequest, secret: str | None, source: VoteSource,
    ) -> ValidationResult:
        if not secret:
            return Rejected(RejectReason.NO_SECRET_CONFIGURED)
        if request.header(AUTHORIZATION_HEADER) != secret:
            return Rejected(RejectReason.AUTHORIZATION_MISMATCH)

        try:
            payload = parse_payload(request.body, source, ProtocolVersion.V0)
        except MalformedPayload as exc:
            logger.info("Rejected v0 body: %s", exc.message)
            return Rejected(RejectReason.MALFORMED_PAYLOAD)
        return Accepted(payload=payload, version=ProtocolVersion.V0)
