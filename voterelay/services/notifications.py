"""
voterelay.services.notifications — Test-vote DMs
=================================================

When an owner presses the listing site's "send test" button the voter
(the owner) gets a short DM confirming the webhook works.  The DM goes
straight through Discord's REST API; the relay does not hold a gateway
connection.

The whole exchange is bounded by ``timeout`` and runs as a detached task, so a
slow or failing Discord never affects the webhook response.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from voterelay.database.models import VoteSource
from voterelay.services.embeds import build_test_vote_embed

logger = logging.getLogger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"


class TestVoteNotifier:
    """Send the test-vote confirmation DM.

    Parameters
    ----------
    token:
        Bot token.  Without one, notifications are skipped with a warning.
    timeout:
        Upper bound in seconds for the whole DM exchange (both requests).
    transport:
        Optional httpx transport (tests pass :class:`httpx.MockTransport`).
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        token: str | None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.timeout = timeout
        self.transport = transport

    async def notify(self, application_id: str, user_id: str, source: VoteSource) -> None:
        if not self.token:
            logger.warning(
                "DISCORD_TOKEN not set, skipping test-vote DM for %s", application_id
            )
            return

        embed = build_test_vote_embed(application_id, source)
        async with asyncio.timeout(self.timeout):
            async with httpx.AsyncClient(
                base_url=DISCORD_API_BASE,
                headers={"Authorization": f"Bot {self.token}"},
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                resp = await client.post("/users/@me/channels", json={"recipient_id": user_id})
                resp.raise_for_status()
                channel_id = resp.json()["id"]

                resp = await client.post(
                    f"/channels/{channel_id}/messages",
                    json={"embeds": [embed.to_dict()]},
                )
                resp.raise_for_status()

        logger.info("Sent test-vote DM to %s for %s (%s)", user_id, application_id, source)
