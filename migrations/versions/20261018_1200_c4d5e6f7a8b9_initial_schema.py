"""Initial schema: user_auth, save_action_log.

Revision ID: c4d5e6f7a8b9
Revises:
Create Date: 2026-10-18 12:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision: str = "c4d5e6f7a8b9"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Authorizations: one live row per Slack identity
    op.create_table(
        "user_auth",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("workspace_id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("provider_user_id", sa.String(128), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_user_auth_identity"),
    )
    op.create_index("ix_user_auth_workspace", "user_auth", ["workspace_id"])

    # Save ledger: append-only, unique per (workspace, user, thread, track)
    op.create_table(
        "save_action_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("workspace_id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("channel_id", sa.String(32), nullable=False),
        sa.Column("thread_id", sa.String(32), nullable=False),
        sa.Column("mention_id", sa.String(32), nullable=False),
        sa.Column("track_id", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_code", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('saved', 'already_saved', 'failed')",
            name="save_status",
        ),
        sa.UniqueConstraint(
            "workspace_id", "user_id", "thread_id", "track_id",
            name="uq_save_action_log_key",
        ),
    )
    op.create_index("ix_save_action_log_user", "save_action_log", ["workspace_id", "user_id"])


def downgrade() -> None:
    op.drop_index("ix_save_action_log_user", table_name="save_action_log")
    op.drop_table("save_action_log")
    op.drop_index("ix_user_auth_workspace", table_name="user_auth")
    op.drop_table("user_auth")
