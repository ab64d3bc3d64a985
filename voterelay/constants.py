"""
voterelay.constants — Shared Constants & Helpers
=================================================
"""

from __future__ import annotations

from voterelay.database.models import VoteSource

# ---------------------------------------------------------------------------
# Platform presentation
# ---------------------------------------------------------------------------
PLATFORM_NAMES: dict[str, str] = {
    VoteSource.TOPGG: "Top.gg",
    VoteSource.DBL: "discordbotlist.com",
}


def webhook_url(source: VoteSource | str, application_id: str, base_url: str) -> str:
    """URL an owner pastes into the listing site's webhook settings.

    Top.gg gets the versioned v1 path; the unversioned legacy path remains
    routed for old configurations.
    """
    base = base_url.rstrip("/")
    source = VoteSource(source)
    if source is VoteSource.TOPGG:
        return f"{base}/webhook/topgg/v1/{application_id}"
    return f"{base}/webhook/{source}/{application_id}"
