"""Thin async wrapper over the Slack Web API calls the pipeline needs."""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import structlog
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from beatkeeper.errors import ProviderError
from beatkeeper.slack.events import ThreadMessage

logger = structlog.get_logger()

_PAGE_SIZE = 200

# Raised by the aiohttp transport under AsyncWebClient
_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class SlackClient:
    """Fetches thread history, reacts, and sends DMs."""

    def __init__(self, client: AsyncWebClient, history_limit: int = 1000) -> None:
        self._client = client
        self._history_limit = history_limit

    @classmethod
    def from_token(cls, token: str, history_limit: int = 1000) -> SlackClient:
        return cls(AsyncWebClient(token=token), history_limit=history_limit)

    async def fetch_thread_replies(self, channel_id: str, thread_ts: str) -> list[ThreadMessage]:
        """All messages of a thread, oldest first."""
        messages: list[ThreadMessage] = []
        cursor: str | None = None

        while True:
            kwargs: dict[str, Any] = {"channel": channel_id, "ts": thread_ts, "limit": _PAGE_SIZE}
            if cursor:
                kwargs["cursor"] = cursor
            try:
                resp = await self._client.conversations_replies(**kwargs)
            except SlackApiError as e:
                error = e.response.get("error", "unknown_error")
                logger.error(
                    "slack_replies_failed",
                    channel_id=channel_id,
                    thread_ts=thread_ts,
                    error=error,
                )
                raise ProviderError(f"conversations.replies failed: {error}") from e
            except _TRANSPORT_ERRORS as e:
                logger.error(
                    "slack_replies_unreachable",
                    channel_id=channel_id,
                    thread_ts=thread_ts,
                    error=str(e),
                )
                raise ProviderError(f"conversations.replies unreachable: {e!r}") from e

            for raw in resp.get("messages") or []:
                if not raw.get("ts"):
                    continue
                messages.append(
                    ThreadMessage(
                        ts=raw["ts"],
                        author_id=raw.get("user") or raw.get("bot_id"),
                        text=raw.get("text") or "",
                    )
                )

            cursor = (resp.get("response_metadata") or {}).get("next_cursor")
            if not cursor or len(messages) >= self._history_limit:
                break

        messages.sort(key=lambda m: m.sort_key)
        logger.info(
            "slack_thread_fetched",
            channel_id=channel_id,
            thread_ts=thread_ts,
            message_count=len(messages),
        )
        return messages[: self._history_limit]

    async def add_reaction(self, channel_id: str, message_ts: str, emoji: str) -> None:
        try:
            await self._client.reactions_add(channel=channel_id, timestamp=message_ts, name=emoji)
        except SlackApiError as e:
            error = e.response.get("error", "unknown_error")
            if error == "already_reacted":
                return
            raise ProviderError(f"reactions.add failed: {error}") from e
        except _TRANSPORT_ERRORS as e:
            raise ProviderError(f"reactions.add unreachable: {e!r}") from e

    async def post_message(self, channel_id: str, text: str) -> None:
        """Post a message; a user ID as channel opens a DM."""
        try:
            await self._client.chat_postMessage(channel=channel_id, text=text)
        except SlackApiError as e:
            error = e.response.get("error", "unknown_error")
            raise ProviderError(f"chat.postMessage failed: {error}") from e
        except _TRANSPORT_ERRORS as e:
            raise ProviderError(f"chat.postMessage unreachable: {e!r}") from e
