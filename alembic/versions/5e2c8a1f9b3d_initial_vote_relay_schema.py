"""Initial vote relay schema

Revision ID: 5e2c8a1f9b3d
Revises:
Create Date: 2025-11-04 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5e2c8a1f9b3d"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create applications, votes, forwardings and queued_messages."""
    op.create_table(
        "applications",
        sa.Column("application_id", sa.String(32), primary_key=True),
        sa.Column("source", sa.String(10), primary_key=True),
        sa.Column("secret", sa.Text(), nullable=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=True),
        sa.Column("vote_role_id", sa.BigInteger(), nullable=True),
        sa.Column("role_duration_seconds", sa.Integer(), nullable=True),
        sa.Column(
            "invalid_request_count", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_applications_guild_id", "applications", ["guild_id"])

    op.create_table(
        "votes",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("application_id", sa.String(32), nullable=False),
        sa.Column("source", sa.String(10), nullable=False),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("role_id", sa.BigInteger(), nullable=False),
        sa.Column("has_role", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_votes_member_role", "votes", ["guild_id", "user_id", "role_id"])
    op.create_index("ix_votes_expires_at", "votes", ["expires_at"])
    op.create_index("ix_votes_application", "votes", ["application_id", "source"])

    op.create_table(
        "forwardings",
        sa.Column("application_id", sa.String(32), primary_key=True),
        sa.Column("target_url", sa.String(500), nullable=False),
        sa.Column("secret", sa.Text(), nullable=False),
        sa.Column("iv", sa.String(64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "queued_messages",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("queue", sa.String(50), nullable=False),
        sa.Column("body", postgresql.JSONB(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_queued_messages_queue_created", "queued_messages", ["queue", "created_at"]
    )


def downgrade() -> None:
    """Drop every vote relay table."""
    op.drop_index("ix_queued_messages_queue_created", table_name="queued_messages")
    op.drop_table("queued_messages")
    op.drop_table("forwardings")
    op.drop_index("ix_votes_application", table_name="votes")
    op.drop_index("ix_votes_expires_at", table_name="votes")
    op.drop_index("ix_votes_member_role", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_applications_guild_id", table_name="applications")
    op.drop_table("applications")
