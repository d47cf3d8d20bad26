"""Create users table.

Revision ID: 001_users
Revises:
Create Date: 2026-10-19

- users: account records with lifecycle status, bcrypt hash and the
  session invalidation cutoff.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_users"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.String(255), server_default="", nullable=False),
        sa.Column(
            "status", sa.String(20), server_default="inactive", nullable=False
        ),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column(
            "token_invalidated_before", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('inactive', 'active')", name="ck_users_status"
        ),
    )

    # Case-insensitive lookups (UserRepository.get_by_email)
    op.create_index(
        "idx_users_email_lower", "users", [sa.text("lower(email)")], unique=True
    )


def downgrade() -> None:
    op.drop_index("idx_users_email_lower", table_name="users")
    op.drop_table("users")
