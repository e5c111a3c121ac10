"""Process-wide service container.

Built once by the application lifespan and shared by reference with every
request handler through ``app.state.services``.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beatkeeper.config import Settings
from beatkeeper.core.orchestrator import MentionOrchestrator
from beatkeeper.core.task_manager import TaskRunner
from beatkeeper.db.credentials import CredentialStore
from beatkeeper.db.ledger import IdempotencyLedger
from beatkeeper.slack.client import SlackClient
from beatkeeper.spotify.client import SpotifyClient
from beatkeeper.spotify.oauth import CsrfStateStore
from beatkeeper.spotify.tokens import TokenLifecycleManager


@dataclass
class Services:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    state_store: CsrfStateStore
    credentials: CredentialStore
    ledger: IdempotencyLedger
    slack: SlackClient
    spotify: SpotifyClient
    tokens: TokenLifecycleManager
    orchestrator: MentionOrchestrator
    runner: TaskRunner


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    slack: SlackClient | None = None,
    spotify: SpotifyClient | None = None,
) -> Services:
    """Wire every component from settings; collaborators may be injected."""
    slack = slack or SlackClient.from_token(
        settings.slack_bot_token, history_limit=settings.thread_history_limit
    )
    spotify = spotify or SpotifyClient(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        redirect_uri=settings.spotify_redirect_uri,
        timeout=settings.http_timeout_s,
    )
    credentials = CredentialStore(session_factory)
    ledger = IdempotencyLedger(session_factory)
    tokens = TokenLifecycleManager(
        credentials, spotify, refresh_margin_s=settings.token_refresh_margin_s
    )
    orchestrator = MentionOrchestrator(
        slack=slack,
        spotify=spotify,
        credentials=credentials,
        tokens=tokens,
        ledger=ledger,
        base_url=settings.base_url,
    )
    return Services(
        settings=settings,
        session_factory=session_factory,
        state_store=CsrfStateStore(ttl_s=settings.oauth_state_ttl_s),
        credentials=credentials,
        ledger=ledger,
        slack=slack,
        spotify=spotify,
        tokens=tokens,
        orchestrator=orchestrator,
        runner=TaskRunner(),
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency."""
    return request.app.state.services
