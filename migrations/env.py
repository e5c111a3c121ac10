"""Alembic environment: runs migrations over the async engine."""

from __future__ import annotations

import asyncio

from alembic import context
from sqlalchemy.engine import Connection

from beatkeeper.db.models import Base
from beatkeeper.db.session import async_engine

target_metadata = Base.metadata


def _run(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    async with async_engine.connect() as conn:
        await conn.run_sync(_run)
    await async_engine.dispose()


asyncio.run(run_migrations_online())
