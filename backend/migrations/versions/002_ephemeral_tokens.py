"""Create activation_tokens and password_reset_tokens.

Revision ID: 002_ephemeral_tokens
Revises: 001_users
Create Date: 2026-10-19

One table per token purpose, so a token of one purpose can never be
redeemed as another. Rows are keyed by the SHA-256 hash of the plain
token. The partial unique index allows at most one unused token per user
and purpose; concurrent issuers race on it.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "002_ephemeral_tokens"
down_revision: str | None = "001_users"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_TABLES = ("activation_tokens", "password_reset_tokens")


def upgrade() -> None:
    for table in _TABLES:
        op.create_table(
            table,
            sa.Column("token_hash", sa.String(64), primary_key=True),
            sa.Column(
                "user_id",
                UUID(as_uuid=True),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("email", sa.String(255), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
                nullable=False,
            ),
        )
        op.create_index(
            f"uq_{table}_user_unused",
            table,
            ["user_id"],
            unique=True,
            postgresql_where=sa.text("used_at IS NULL"),
        )
        op.create_index(f"ix_{table}_expires_at", table, ["expires_at"])


def downgrade() -> None:
    for table in reversed(_TABLES):
        op.drop_index(f"ix_{table}_expires_at", table_name=table)
        op.drop_index(f"uq_{table}_user_unused", table_name=table)
        op.drop_table(table)
