"""Pytest configuration and shared fixtures.

Storage tests run against a throwaway SQLite file through aiosqlite; the
unique constraints behave the same as on Postgres for our purposes.

Run with:
    pytest tests/                          # Run all tests
    pytest tests/unit/test_ledger.py -v    # Run specific test file
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from beatkeeper.db.credentials import CredentialStore
from beatkeeper.db.ledger import IdempotencyLedger
from beatkeeper.db.models import Base
from beatkeeper.db.session import make_session_factory


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'beatkeeper.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
def credentials(session_factory) -> CredentialStore:
    return CredentialStore(session_factory)


@pytest.fixture
def ledger(session_factory) -> IdempotencyLedger:
    return IdempotencyLedger(session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_slack() -> MagicMock:
    """Slack client double: empty thread, reactions and DMs succeed."""
    slack = MagicMock()
    slack.fetch_thread_replies = AsyncMock(return_value=[])
    slack.add_reaction = AsyncMock(return_value=None)
    slack.post_message = AsyncMock(return_value=None)
    return slack


@pytest.fixture
def mock_spotify() -> MagicMock:
    """Spotify client double: saves succeed, refresh not expected."""
    spotify = MagicMock()
    spotify.save_track = AsyncMock(return_value=None)
    spotify.refresh_access_token = AsyncMock()
    spotify.exchange_code = AsyncMock()
    spotify.get_current_user = AsyncMock(return_value={"id": "spotify-user", "display_name": "DJ"})
    spotify.authorize_url = MagicMock(
        side_effect=lambda state: f"https://accounts.spotify.com/authorize?state={state}"
    )
    return spotify

