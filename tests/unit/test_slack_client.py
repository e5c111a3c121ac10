"""Unit tests for the Slack Web API wrapper.

Run with: pytest tests/unit/test_slack_client.py -v
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from slack_sdk.errors import SlackApiError

from beatkeeper.errors import ProviderError
from beatkeeper.slack.client import SlackClient


def _page(messages: list[dict], next_cursor: str = "") -> dict:
    return {"ok": True, "messages": messages, "response_metadata": {"next_cursor": next_cursor}}


@pytest.fixture
def web_client() -> MagicMock:
    client = MagicMock()
    client.conversations_replies = AsyncMock()
    client.reactions_add = AsyncMock()
    client.chat_postMessage = AsyncMock()
    return client


class TestFetchThreadReplies:
    async def test_single_page(self, web_client) -> None:
        web_client.conversations_replies.return_value = _page([
            {"ts": "1700000000.000100", "user": "U1", "text": "root"},
            {"ts": "1700000001.000100", "user": "U2", "text": "reply"},
        ])
        messages = await SlackClient(web_client).fetch_thread_replies("C1", "1700000000.000100")

        assert [m.text for m in messages] == ["root", "reply"]
        assert messages[0].author_id == "U1"
        web_client.conversations_replies.assert_awaited_once_with(
            channel="C1", ts="1700000000.000100", limit=200,
        )

    async def test_follows_cursor_and_sorts(self, web_client) -> None:
        web_client.conversations_replies.side_effect = [
            _page([{"ts": "1700000005.000000", "user": "U1", "text": "late"}], next_cursor="c2"),
            _page([{"ts": "1700000001.000000", "bot_id": "B1", "text": "early"}]),
        ]
        messages = await SlackClient(web_client).fetch_thread_replies("C1", "1700000000.000100")

        assert [m.text for m in messages] == ["early", "late"]
        assert messages[0].author_id == "B1"
        assert web_client.conversations_replies.await_args_list[1].kwargs["cursor"] == "c2"

    async def test_history_limit(self, web_client) -> None:
        web_client.conversations_replies.side_effect = [
            _page(
                [{"ts": f"17000000{i:02d}.000000", "user": "U1", "text": str(i)} for i in range(3)],
                next_cursor="more",
            ),
        ]
        messages = await SlackClient(web_client, history_limit=2).fetch_thread_replies("C1", "1")

        assert [m.text for m in messages] == ["0", "1"]
        web_client.conversations_replies.assert_awaited_once()

    async def test_api_error(self, web_client) -> None:
        web_client.conversations_replies.side_effect = SlackApiError(
            "failed", {"ok": False, "error": "channel_not_found"},
        )
        with pytest.raises(ProviderError, match="channel_not_found"):
            await SlackClient(web_client).fetch_thread_replies("C1", "1")


class TestAddReaction:
    async def test_reacts(self, web_client) -> None:
        await SlackClient(web_client).add_reaction("C1", "1700000100.000200", "recycle")
        web_client.reactions_add.assert_awaited_once_with(
            channel="C1", timestamp="1700000100.000200", name="recycle",
        )

    async def test_already_reacted_is_ok(self, web_client) -> None:
        web_client.reactions_add.side_effect = SlackApiError(
            "failed", {"ok": False, "error": "already_reacted"},
        )
        await SlackClient(web_client).add_reaction("C1", "1", "x")

    async def test_other_error_raises(self, web_client) -> None:
        web_client.reactions_add.side_effect = SlackApiError(
            "failed", {"ok": False, "error": "missing_scope"},
        )
        with pytest.raises(ProviderError):
            await SlackClient(web_client).add_reaction("C1", "1", "x")


class TestPostMessage:
    async def test_posts(self, web_client) -> None:
        await SlackClient(web_client).post_message("U1", "hello")
        web_client.chat_postMessage.assert_awaited_once_with(channel="U1", text="hello")

    async def test_error_raises(self, web_client) -> None:
        web_client.chat_postMessage.side_effect = SlackApiError(
            "failed", {"ok": False, "error": "cannot_dm_bot"},
        )
        with pytest.raises(ProviderError):
            await SlackClient(web_client).post_message("U1", "hello")


class TestTransportErrors:
    async def test_connection_reset_on_fetch(self, web_client) -> None:
        web_client.conversations_replies.side_effect = aiohttp.ClientConnectionError("reset")
        with pytest.raises(ProviderError, match="unreachable"):
            await SlackClient(web_client).fetch_thread_replies("C1", "1")

    async def test_timeout_on_fetch(self, web_client) -> None:
        web_client.conversations_replies.side_effect = asyncio.TimeoutError()
        with pytest.raises(ProviderError):
            await SlackClient(web_client).fetch_thread_replies("C1", "1")

    async def test_connection_reset_on_reaction(self, web_client) -> None:
        web_client.reactions_add.side_effect = aiohttp.ServerDisconnectedError()
        with pytest.raises(ProviderError):
            await SlackClient(web_client).add_reaction("C1", "1", "x")

    async def test_timeout_on_post(self, web_client) -> None:
        web_client.chat_postMessage.side_effect = asyncio.TimeoutError()
        with pytest.raises(ProviderError):
            await SlackClient(web_client).post_message("U1", "hello")
