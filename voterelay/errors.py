"""
voterelay.errors — Ingestion error taxonomy
============================================

Each error carries the HTTP status the webhook endpoint answers with.
4xx statuses tell the listing site that retrying will not help; only
:class:`TransientFailure` is answered with a 5xx so the site's own
redelivery policy kicks in.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for every outcome that stops a webhook delivery."""

    status_code: int = 400
    retryable: bool = False
    default_message: str = "Invalid request"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationFailure(IngestionError):
    """Bad signature, bad authorization header, or no secret to check against."""
    status_code = 403
    default_message = "Invalid request"


class MalformedSignatureHeader(IngestionError):
    status_code = 400
    default_message = "Malformed signature header"


class MalformedPayload(IngestionError):
    status_code = 400
    default_message = "Malformed payload"


class UnknownApplication(IngestionError):
    """No configuration, or no secret yet.  Both answer the same on purpose."""
    status_code = 404
    default_message = "Application not found"


class NotConfigured(IngestionError):
    """The request was authentic but the application has no role or guild."""
    status_code = 400
    default_message = "Application not properly configured for vote processing"


class TransientFailure(IngestionError):
    """Storage or queue unavailable; the listing site should retry."""
    status_code = 503
    retryable = True
    default_message = "Temporarily unavailable"
