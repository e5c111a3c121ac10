"""beatkeeper database models.

Design principles:
- One live authorization per Slack identity, upserted on reconnect
- Append-only save log whose unique key is the idempotency guarantee
- All timestamps timezone-aware UTC, whatever the backend returns
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime that always comes back timezone-aware.

    SQLite drops tzinfo on the way out; Postgres keeps it. Either way the
    application only ever sees aware UTC values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    """Declarative base; datetime columns map to UTCDateTime."""

    type_annotation_map = {
        datetime: UTCDateTime,
    }


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class SaveStatus(str, Enum):
    """Outcome of one save attempt."""
    SAVED = "saved"
    ALREADY_SAVED = "already_saved"
    FAILED = "failed"


# ═══════════════════════════════════════════════════════════════════════════════
# TABLES
# ═══════════════════════════════════════════════════════════════════════════════

class UserAuth(Base):
    """Spotify authorization for one Slack identity."""

    __tablename__ = "user_auth"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_user_auth_identity"),
        Index("ix_user_auth_workspace", "workspace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[str] = mapped_column(
        String(32), nullable=False,
        comment="Slack workspace/team ID (T1234567890)"
    )
    user_id: Mapped[str] = mapped_column(
        String(32), nullable=False,
        comment="Slack user ID (U1234567890)"
    )
    provider_user_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True,
        comment="Spotify user ID, filled once verified"
    )

    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserAuth {self.workspace_id}/{self.user_id} expires={self.expires_at}>"


class SaveActionLog(Base):
    """One row per distinct (workspace, user, thread, track) save attempt."""

    __tablename__ = "save_action_log"
    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "user_id", "thread_id", "track_id",
            name="uq_save_action_log_key",
        ),
        Index("ix_save_action_log_user", "workspace_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    thread_id: Mapped[str] = mapped_column(
        String(32), nullable=False,
        comment="Slack thread_ts of the thread root"
    )
    mention_id: Mapped[str] = mapped_column(
        String(32), nullable=False,
        comment="Slack ts of the triggering mention"
    )
    track_id: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[SaveStatus] = mapped_column(
        SQLEnum(
            SaveStatus,
            name="save_status",
            native_enum=False,
            create_constraint=True,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<SaveActionLog {self.track_id} {self.status.value}>"
