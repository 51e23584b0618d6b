"""create_users_and_users_tokens

Revision ID: 3f2a9c1d7e5b
Revises:
Create Date: 2026-10-18 09:00:00.000000

Create users and users_tokens tables.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7e5b"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "users_tokens",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("token", sa.LargeBinary(), nullable=False),
        sa.Column("hashed_token", sa.LargeBinary(), nullable=True),
        sa.Column("context", sa.String(length=255), nullable=False),
        sa.Column("sent_to", sa.String(length=255), nullable=True),
        sa.Column(
            "annotations",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("user_id", sa.String(length=21), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_tokens_user_id", "users_tokens", ["user_id"])
    op.create_index(
        "ix_users_tokens_context_token", "users_tokens", ["context", "token"], unique=True
    )
    op.create_index("ix_users_tokens_hashed_token", "users_tokens", ["hashed_token"])
    # Containment lookups on annotations (account invites)
    op.create_index(
        "ix_users_tokens_annotations",
        "users_tokens",
        ["annotations"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_index("ix_users_tokens_annotations", table_name="users_tokens")
    op.drop_index("ix_users_tokens_hashed_token", table_name="users_tokens")
    op.drop_index("ix_users_tokens_context_token", table_name="users_tokens")
    op.drop_index("ix_users_tokens_user_id", table_name="users_tokens")
    op.drop_table("users_tokens")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
