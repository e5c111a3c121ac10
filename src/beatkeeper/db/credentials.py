"""Persistent Spotify authorizations, one per Slack identity.

Reconnecting upserts the existing row in place; refresh overwrites the
token fields of that row in a single UPDATE so readers never see a mixed
token pair.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beatkeeper.db.models import UserAuth, utcnow

logger = structlog.get_logger()


def _upsert_statement(dialect_name: str, values: dict[str, Any]) -> Any:
    """INSERT .. ON CONFLICT (workspace_id, user_id) DO UPDATE."""
    insert = sqlite.insert if dialect_name == "sqlite" else postgresql.insert
    stmt = insert(UserAuth).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[UserAuth.workspace_id, UserAuth.user_id],
        set_={
            "access_token": stmt.excluded.access_token,
            "refresh_token": stmt.excluded.refresh_token,
            "expires_at": stmt.excluded.expires_at,
            # A reconnect without a verified profile keeps the known one
            "provider_user_id": func.coalesce(
                stmt.excluded.provider_user_id, UserAuth.provider_user_id
            ),
            "updated_at": utcnow(),
        },
    )


class CredentialStore:
    """Reads and writes ``user_auth`` rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, workspace_id: str, user_id: str) -> UserAuth | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(UserAuth).where(
                    UserAuth.workspace_id == workspace_id,
                    UserAuth.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def upsert(
        self,
        workspace_id: str,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        provider_user_id: str | None = None,
    ) -> UserAuth:
        """Insert or replace the authorization for this identity."""
        async with self._session_factory() as db:
            stmt = _upsert_statement(
                db.get_bind().dialect.name,
                {
                    "id": uuid.uuid4(),
                    "workspace_id": workspace_id,
                    "user_id": user_id,
                    "provider_user_id": provider_user_id,
                    "access_token": access_token,
                    "refresh_token": refresh_token,
                    "expires_at": expires_at,
                },
            )
            await db.execute(stmt)
            await db.commit()

            result = await db.execute(
                select(UserAuth)
                .where(
                    UserAuth.workspace_id == workspace_id,
                    UserAuth.user_id == user_id,
                )
                .execution_options(populate_existing=True)
            )
            record = result.scalar_one()

        logger.info(
            "user_auth_upserted",
            user_auth_id=str(record.id),
            workspace_id=workspace_id,
            user_id=user_id,
        )
        return record

    async def update_tokens(
        self,
        record_id: uuid.UUID,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> None:
        """Overwrite the token pair and expiry in one statement."""
        async with self._session_factory() as db:
            await db.execute(
                update(UserAuth)
                .where(UserAuth.id == record_id)
                .values(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=expires_at,
                    updated_at=utcnow(),
                )
            )
            await db.commit()

    async def set_provider_user_id(self, record_id: uuid.UUID, provider_user_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(UserAuth)
                .where(UserAuth.id == record_id)
                .values(provider_user_id=provider_user_id, updated_at=utcnow())
            )
            await db.commit()
