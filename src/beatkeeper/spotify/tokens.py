"""Access token lifecycle: refresh on demand, shortly before expiry.

Refreshes for the same Slack identity are single-flight within a process:
the second caller waits, re-reads the stored record and reuses the token
the first caller obtained. Across processes the final stored state is
whichever refresh wrote last; the pair is always written together.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable

import structlog

from beatkeeper.db.credentials import CredentialStore
from beatkeeper.db.models import UserAuth, utcnow
from beatkeeper.spotify.client import SpotifyClient

logger = structlog.get_logger()

DEFAULT_REFRESH_MARGIN_S = 300


@dataclass(frozen=True)
class AccessToken:
    token: str
    refreshed: bool


class TokenLifecycleManager:
    def __init__(
        self,
        store: CredentialStore,
        spotify: SpotifyClient,
        refresh_margin_s: int = DEFAULT_REFRESH_MARGIN_S,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._spotify = spotify
        self._margin = timedelta(seconds=refresh_margin_s)
        self._clock = clock
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    def needs_refresh(self, record: UserAuth) -> bool:
        return record.expires_at - self._clock() < self._margin

    @asynccontextmanager
    async def _identity_lock(self, record: UserAuth) -> AsyncIterator[None]:
        """Per-identity lock, dropped once its last holder or waiter leaves."""
        key = (record.workspace_id, record.user_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def ensure_valid_access_token(self, record: UserAuth) -> str:
        """Access token good for at least the refresh margin.

        Raises ``ReauthRequired`` or ``TokenRefreshFailed`` from the
        refresh grant; neither is retried here.
        """
        return (await self.resolve(record)).token

    async def resolve(self, record: UserAuth) -> AccessToken:
        if not self.needs_refresh(record):
            logger.debug(
                "access_token_valid",
                user_auth_id=str(record.id),
                expires_at=record.expires_at.isoformat(),
            )
            return AccessToken(record.access_token, refreshed=False)

        async with self._identity_lock(record):
            current = await self._store.get(record.workspace_id, record.user_id)
            if current is not None and not self.needs_refresh(current):
                logger.info("access_token_refreshed_concurrently", user_auth_id=str(record.id))
                return AccessToken(current.access_token, refreshed=True)
            current = current or record
            return AccessToken(await self._refresh(current), refreshed=True)

    async def _refresh(self, record: UserAuth) -> str:
        logger.info(
            "access_token_refreshing",
            user_auth_id=str(record.id),
            workspace_id=record.workspace_id,
            user_id=record.user_id,
            expires_at=record.expires_at.isoformat(),
        )

        grant = await self._spotify.refresh_access_token(record.refresh_token)

        # Spotify may or may not rotate the refresh token
        refresh_token = grant.refresh_token or record.refresh_token
        expires_at = self._clock() + timedelta(seconds=grant.expires_in)
        await self._store.update_tokens(record.id, grant.access_token, refresh_token, expires_at)

        logger.info(
            "access_token_refreshed",
            user_auth_id=str(record.id),
            refresh_token_rotated=grant.refresh_token is not None,
            expires_at=expires_at.isoformat(),
        )
        return grant.access_token
