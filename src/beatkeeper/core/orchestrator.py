"""Mention processing: from a verified app_mention to a saved track.

State machine:
    RECEIVED → LINK_SELECTED → AUTH_RESOLVED → SAVE_ATTEMPTED → REACTED → DONE
    any state → FAILED (❌ reaction, plus a failed ledger row once the
    track is known)

The mention's author owns the save, whoever posted the link. The outcome
is only ever reported as a reaction on the mention; errors are logged,
never posted into the conversation.

Idempotency: the ledger is consulted before the provider call and written
after it. Two concurrent mentions can both pass ``find`` and both save;
the unique key then lets exactly one ``saved`` row in and the loser
reports ``already_saved``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

import structlog
from sqlalchemy.exc import SQLAlchemyError
from structlog.typing import FilteringBoundLogger

from beatkeeper.db.credentials import CredentialStore
from beatkeeper.db.ledger import IdempotencyLedger, SaveKey
from beatkeeper.db.models import SaveStatus
from beatkeeper.errors import (
    AuthRequired,
    BeatkeeperError,
    DuplicateKey,
    NoLinkFound,
    SaveApiError,
)
from beatkeeper.slack.client import SlackClient
from beatkeeper.slack.events import MentionEvent
from beatkeeper.slack.reactions import CONNECT_SENT_EMOJI, emoji_for_status
from beatkeeper.spotify.client import SpotifyClient
from beatkeeper.spotify.parser import select_first
from beatkeeper.spotify.tokens import TokenLifecycleManager

logger = structlog.get_logger()

_CONNECT_RE = re.compile(r"\bconnect\b", re.IGNORECASE)


class MentionState(str, Enum):
    RECEIVED = "received"
    LINK_SELECTED = "link_selected"
    AUTH_RESOLVED = "auth_resolved"
    SAVE_ATTEMPTED = "save_attempted"
    REACTED = "reacted"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MentionOutcome:
    """Where a mention ended up. Returned for logging and tests only."""

    state: MentionState
    status: SaveStatus | None = None
    track_id: str | None = None
    reason: str | None = None


@dataclass
class _Attempt:
    """How far a mention got, for the last-resort failure path."""

    log: FilteringBoundLogger
    key: SaveKey | None = None


def is_connect_request(text: str) -> bool:
    return bool(_CONNECT_RE.search(text))


class MentionOrchestrator:
    """Composes thread lookup, link selection, auth, save and feedback."""

    def __init__(
        self,
        slack: SlackClient,
        spotify: SpotifyClient,
        credentials: CredentialStore,
        tokens: TokenLifecycleManager,
        ledger: IdempotencyLedger,
        base_url: str,
    ) -> None:
        self._slack = slack
        self._spotify = spotify
        self._credentials = credentials
        self._tokens = tokens
        self._ledger = ledger
        self._base_url = base_url.rstrip("/")

    def connect_url(self, workspace_id: str, user_id: str) -> str:
        query = urlencode({"workspace_id": workspace_id, "user_id": user_id})
        return f"{self._base_url}/spotify/connect?{query}"

    async def handle_mention(self, mention: MentionEvent) -> MentionOutcome:
        log = logger.bind(
            workspace_id=mention.workspace_id,
            user_id=mention.author_id,
            channel_id=mention.channel_id,
            thread_id=mention.thread_id,
            mention_id=mention.mention_id,
        )
        log.info("mention_received")

        attempt = _Attempt(log)
        try:
            return await self._process(mention, attempt)
        except Exception as e:
            attempt.log.exception("mention_unexpected_error")
            return await self._fail(
                mention, attempt.log, BeatkeeperError.code, str(e) or type(e).__name__,
                key=attempt.key,
            )

    async def _process(self, mention: MentionEvent, attempt: _Attempt) -> MentionOutcome:
        log = attempt.log
        if is_connect_request(mention.clean_text):
            return await self._send_connect_link(mention, log)

        # ── RECEIVED → LINK_SELECTED ─────────────────────────────────
        try:
            messages = await self._slack.fetch_thread_replies(mention.channel_id, mention.thread_id)
        except BeatkeeperError as e:
            return await self._fail(mention, log, e.code, str(e))

        track_id = select_first(messages)
        if track_id is None:
            return await self._fail(mention, log, NoLinkFound.code, "no track link in thread")
        log = log.bind(track_id=track_id)
        log.info("mention_state", state=MentionState.LINK_SELECTED.value, message_count=len(messages))

        key = SaveKey(
            workspace_id=mention.workspace_id,
            user_id=mention.author_id,
            thread_id=mention.thread_id,
            track_id=track_id,
        )
        attempt.log, attempt.key = log, key

        # ── LINK_SELECTED → AUTH_RESOLVED ────────────────────────────
        try:
            record = await self._credentials.get(mention.workspace_id, mention.author_id)
        except SQLAlchemyError as e:
            return await self._fail(mention, log, "storage_error", str(e), key=key)
        if record is None:
            return await self._fail(
                mention, log, AuthRequired.code, "no Spotify authorization", key=key,
            )

        try:
            access_token = await self._tokens.ensure_valid_access_token(record)
        except BeatkeeperError as e:
            return await self._fail(mention, log, e.code, str(e), key=key)
        except SQLAlchemyError as e:
            return await self._fail(mention, log, "storage_error", str(e), key=key)
        log.info("mention_state", state=MentionState.AUTH_RESOLVED.value)

        # ── AUTH_RESOLVED → SAVE_ATTEMPTED ───────────────────────────
        try:
            existing = await self._ledger.find(key)
        except SQLAlchemyError as e:
            return await self._fail(mention, log, "storage_error", str(e), key=key)

        if existing is not None:
            # Any earlier attempt settles the key, failed ones included
            log.info("save_skipped_existing", existing_status=existing.status.value)
            return await self._finish(mention, log, SaveStatus.ALREADY_SAVED, track_id)

        try:
            await self._spotify.save_track(access_token, track_id)
        except SaveApiError as e:
            return await self._fail(mention, log, e.code, e.message, key=key)
        log.info("mention_state", state=MentionState.SAVE_ATTEMPTED.value)

        status = SaveStatus.SAVED
        try:
            await self._ledger.insert(
                key,
                channel_id=mention.channel_id,
                mention_id=mention.mention_id,
                status=SaveStatus.SAVED,
            )
        except DuplicateKey:
            log.info("save_race_lost")
            status = SaveStatus.ALREADY_SAVED
        except SQLAlchemyError as e:
            # The track is in the library; only the log row is missing
            log.error("save_record_failed", error=str(e))

        return await self._finish(mention, log, status, track_id)

    # ── Terminal transitions ─────────────────────────────────────────

    async def _finish(
        self,
        mention: MentionEvent,
        log: FilteringBoundLogger,
        status: SaveStatus,
        track_id: str,
    ) -> MentionOutcome:
        await self._react(mention, emoji_for_status(status), log)
        log.info("mention_done", status=status.value)
        state = MentionState.FAILED if status is SaveStatus.FAILED else MentionState.DONE
        return MentionOutcome(state=state, status=status, track_id=track_id)

    async def _fail(
        self,
        mention: MentionEvent,
        log: FilteringBoundLogger,
        code: str,
        message: str,
        key: SaveKey | None = None,
    ) -> MentionOutcome:
        log.warning("mention_failed", reason=code, detail=message)

        if key is not None:
            try:
                await self._ledger.insert(
                    key,
                    channel_id=mention.channel_id,
                    mention_id=mention.mention_id,
                    status=SaveStatus.FAILED,
                    error_code=code,
                    error_message=message[:1000] or None,
                )
            except DuplicateKey:
                pass
            except SQLAlchemyError as e:
                log.error("failure_record_failed", error=str(e))

        await self._react(mention, emoji_for_status(SaveStatus.FAILED), log)
        return MentionOutcome(
            state=MentionState.FAILED,
            status=SaveStatus.FAILED,
            track_id=key.track_id if key else None,
            reason=code,
        )

    async def _send_connect_link(
        self,
        mention: MentionEvent,
        log: FilteringBoundLogger,
    ) -> MentionOutcome:
        url = self.connect_url(mention.workspace_id, mention.author_id)
        try:
            await self._slack.post_message(
                mention.author_id,
                f"Connect your Spotify account to save tracks from threads: {url}",
            )
        except BeatkeeperError as e:
            return await self._fail(mention, log, e.code, str(e))

        log.info("connect_link_sent")
        await self._react(mention, CONNECT_SENT_EMOJI, log)
        return MentionOutcome(state=MentionState.DONE, reason="connect")

    async def _react(
        self,
        mention: MentionEvent,
        emoji: str,
        log: FilteringBoundLogger,
    ) -> None:
        """Best effort: feedback failures are logged, never raised."""
        try:
            await self._slack.add_reaction(mention.channel_id, mention.mention_id, emoji)
        except Exception as e:
            log.warning("reaction_failed", emoji=emoji, error=str(e))
            return
        log.debug("mention_state", state=MentionState.REACTED.value, emoji=emoji)
