"""
voterelay.engine.signature — Top.gg v1 HMAC-SHA256 signatures
==============================================================

Top.gg v1 signs ``"{timestamp}.{raw_body}"`` with the application's
webhook secret and sends the lowercase hex digest in the
``x-topgg-signature`` header.  Both helpers are pure; the key is derived
from whatever secret the caller fetched for this request.
"""

from __future__ import annotations

import hashlib
import hmac
import re

__all__ = ["compute_signature", "verify_signature"]

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


def _as_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(secret: str, timestamp: str, raw_body: str | bytes) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``"{timestamp}.{raw_body}"``."""
    message = _as_bytes(timestamp) + b"." + _as_bytes(raw_body)
    return hmac.new(_as_bytes(secret), message, hashlib.sha256).hexdigest()


def verify_signature(
    signature: str,
    timestamp: str,
    raw_body: str | bytes,
    secret: str,
) -> bool:
    """Check *signature* against a freshly computed digest.

    Returns ``False`` for non-hex input or a digest of the wrong length;
    never raises.  The byte comparison is :func:`hmac.compare_digest`.
    """
    if not signature or not _HEX_RE.fullmatch(signature) or len(signature) % 2:
        return False

    provided = bytes.fromhex(signature)
    expected = bytes.fromhex(compute_signature(secret, timestamp, raw_body))
    if len(provided) != len(expected):
        return False
    return hmac.compare_digest(provided, expected)
