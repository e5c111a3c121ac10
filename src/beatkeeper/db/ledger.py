"""Idempotency ledger over ``save_action_log``.

The unique key (workspace_id, user_id, thread_id, track_id) is the only
thing standing between concurrent mentions and a duplicate save. There is
no combined check-and-insert here: ``find`` and ``insert``
are separate, and a lost race surfaces as ``DuplicateKey`` for the
caller to resolve.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beatkeeper.db.models import SaveActionLog, SaveStatus
from beatkeeper.errors import DuplicateKey

logger = structlog.get_logger()


@dataclass(frozen=True)
class SaveKey:
    """The idempotency key of a save."""

    workspace_id: str
    user_id: str
    thread_id: str
    track_id: str


class IdempotencyLedger:
    """Append-only log of save attempts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find(self, key: SaveKey) -> SaveActionLog | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SaveActionLog).where(
                    SaveActionLog.workspace_id == key.workspace_id,
                    SaveActionLog.user_id == key.user_id,
                    SaveActionLog.thread_id == key.thread_id,
                    SaveActionLog.track_id == key.track_id,
                )
            )
            return result.scalar_one_or_none()

    async def insert(
        self,
        key: SaveKey,
        *,
        channel_id: str,
        mention_id: str,
        status: SaveStatus,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> SaveActionLog:
        """Append a record, or raise ``DuplicateKey`` if the key exists."""
        record = SaveActionLog(
            workspace_id=key.workspace_id,
            user_id=key.user_id,
            channel_id=channel_id,
            thread_id=key.thread_id,
            mention_id=mention_id,
            track_id=key.track_id,
            status=status,
            error_code=error_code,
            error_message=error_message,
        )
        async with self._session_factory() as db:
            db.add(record)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                logger.info(
                    "save_action_duplicate",
                    workspace_id=key.workspace_id,
                    user_id=key.user_id,
                    thread_id=key.thread_id,
                    track_id=key.track_id,
                    status=status.value,
                )
                raise DuplicateKey(str(e.orig)) from e

        logger.info(
            "save_action_recorded",
            workspace_id=key.workspace_id,
            user_id=key.user_id,
            thread_id=key.thread_id,
            track_id=key.track_id,
            status=status.value,
            error_code=error_code,
        )
        return record
