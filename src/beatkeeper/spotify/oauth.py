"""CSRF state tokens for the Spotify OAuth connect flow.

A token binds one authorization redirect to the Slack identity that asked
for it. Tokens live only in process memory: a restart is equivalent to
every outstanding token expiring.
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable

import structlog

from beatkeeper.errors import StateInvalidOrExpired

logger = structlog.get_logger()

DEFAULT_TTL_S = 600
TOKEN_BYTES = 32


@dataclass(frozen=True)
class PendingState:
    workspace_id: str
    user_id: str
    created_at: float


class CsrfStateStore:
    """Single-use, time-limited OAuth state tokens.

    Constructed once at startup and shared by reference with the connect
    and callback handlers.
    """

    def __init__(
        self,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._pending: dict[str, PendingState] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pending)

    def issue(self, workspace_id: str, user_id: str) -> str:
        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            self._pending[token] = PendingState(workspace_id, user_id, now)
        return token

    def validate_and_consume(self, token: str) -> tuple[str, str] | None:
        """Return (workspace_id, user_id) once, then never again.

        Lookup and removal happen under one lock acquisition, so two
        concurrent callbacks with the same token cannot both succeed. An
        expired token is removed and rejected.
        """
        with self._lock:
            entry = self._pending.pop(token, None)
        if entry is None:
            logger.warning("oauth_state_not_found")
            return None
        if self._clock() - entry.created_at > self._ttl_s:
            logger.warning(
                "oauth_state_expired",
                workspace_id=entry.workspace_id,
                user_id=entry.user_id,
            )
            return None
        return entry.workspace_id, entry.user_id

    def consume(self, token: str) -> tuple[str, str]:
        """Like ``validate_and_consume`` but raises ``StateInvalidOrExpired``."""
        identity = self.validate_and_consume(token)
        if identity is None:
            raise StateInvalidOrExpired("OAuth state unknown, used or expired")
        return identity

    def _purge_expired(self, now: float) -> None:
        stale = [t for t, e in self._pending.items() if now - e.created_at > self._ttl_s]
        for token in stale:
            del self._pending[token]
