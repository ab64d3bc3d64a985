"""
voterelay.services.embeds — Discord embed builders
===================================================
"""

from __future__ import annotations

import discord

from voterelay.constants import PLATFORM_NAMES
from voterelay.database.models import VoteSource


def build_test_vote_embed(application_id: str, source: VoteSource) -> discord.Embed:
    """Confirmation DM sent to whoever pressed the listing site's test button."""
    platform = PLATFORM_NAMES.get(str(source), str(source))
    embed = discord.Embed(
        title="✅ Test vote received",
        description=(
            f"The {platform} webhook for <@{application_id}> reached the vote "
            "handler and passed authentication.\n\n"
            "Test votes never grant roles and are not recorded."
        ),
        color=discord.Color.green(),
    )
    embed.set_footer(text=f"Source: {platform}")
    return embed
