"""initial schema

Create Date: 2026-09-14 10:21:37.418204
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from app.types.sqlalchemy import TZDateTime

# revision identifiers, used by Alembic.
revision: str = "a3f1c9d27e54"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "core_user",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("avatar", sa.String(), nullable=True),
        sa.Column("github_id", sa.String(), nullable=True),
        sa.Column("github_token", sa.String(), nullable=True),
        sa.Column("created_on", TZDateTime(), nullable=False),
        sa.Column("updated_on", TZDateTime(), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_core_user_id"), "core_user", ["id"], unique=False)
    op.create_index(op.f("ix_core_user_email"), "core_user", ["email"], unique=True)
    op.create_index(
        op.f("ix_core_user_github_id"),
        "core_user",
        ["github_id"],
        unique=True,
    )

    op.create_table(
        "core_oauth_client",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("secret_hash", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("website_url", sa.String(), nullable=False),
        sa.Column("preview_url_pattern", sa.String(), nullable=True),
        sa.Column("owner_id", sa.String(), nullable=True),
        sa.Column("created_on", TZDateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ["owner_id"],
            ["core_user.id"],
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_core_oauth_client_id"),
        "core_oauth_client",
        ["id"],
        unique=False,
    )

    op.create_table(
        "core_authorization_code",
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("client_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("redirect_uri", sa.String(), nullable=False),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("code_challenge", sa.String(), nullable=True),
        sa.Column("code_challenge_method", sa.String(), nullable=True),
        sa.Column("expire_on", TZDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["client_id"],
            ["core_oauth_client.id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["core_user.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("code"),
    )
    op.create_index(
        op.f("ix_core_authorization_code_code"),
        "core_authorization_code",
        ["code"],
        unique=False,
    )
    op.create_index(
        op.f("ix_core_authorization_code_client_id"),
        "core_authorization_code",
        ["client_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_core_authorization_code_expire_on"),
        "core_authorization_code",
        ["expire_on"],
        unique=False,
    )

    op.create_table(
        "core_refresh_token",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("token_hash", sa.String(), nullable=False),
        sa.Column("client_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("created_on", TZDateTime(), nullable=False),
        sa.Column("expire_on", TZDateTime(), nullable=False),
        sa.Column("revoked_on", TZDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["client_id"],
            ["core_oauth_client.id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["core_user.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_core_refresh_token_token_hash"),
        "core_refresh_token",
        ["token_hash"],
        unique=True,
    )
    op.create_index(
        op.f("ix_core_refresh_token_client_id"),
        "core_refresh_token",
        ["client_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_core_refresh_token_user_id"),
        "core_refresh_token",
        ["user_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_core_refresh_token_user_id"), table_name="core_refresh_token")
    op.drop_index(
        op.f("ix_core_refresh_token_client_id"),
        table_name="core_refresh_token",
    )
    op.drop_index(
        op.f("ix_core_refresh_token_token_hash"),
        table_name="core_refresh_token",
    )
    op.drop_table("core_refresh_token")

    op.drop_index(
        op.f("ix_core_authorization_code_expire_on"),
        table_name="core_authorization_code",
    )
    op.drop_index(
        op.f("ix_core_authorization_code_client_id"),
        table_name="core_authorization_code",
    )
    op.drop_index(
        op.f("ix_core_authorization_code_code"),
        table_name="core_authorization_code",
    )
    op.drop_table("core_authorization_code")

    op.drop_index(op.f("ix_core_oauth_client_id"), table_name="core_oauth_client")
    op.drop_table("core_oauth_client")

    op.drop_index(op.f("ix_core_user_github_id"), table_name="core_user")
    op.drop_index(op.f("ix_core_user_email"), table_name="core_user")
    op.drop_index(op.f("ix_core_user_id"), table_name="core_user")
    op.drop_table("core_user")
