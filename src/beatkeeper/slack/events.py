"""Slack Events API payloads.

Only two envelope types matter: ``url_verification`` (echo the challenge)
and ``event_callback`` wrapping an ``app_mention``. Everything else is
acknowledged and ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_MENTION_TOKEN_RE = re.compile(r"<@[A-Z0-9]+(?:\|[^>]*)?>")


@dataclass(frozen=True)
class MentionEvent:
    """A verified @-mention of the app inside a thread."""

    workspace_id: str
    channel_id: str
    thread_id: str
    author_id: str
    mention_id: str
    text: str

    @property
    def clean_text(self) -> str:
        """Mention text with ``<@U…>`` tokens removed."""
        return _MENTION_TOKEN_RE.sub("", self.text).strip()


@dataclass(frozen=True)
class ThreadMessage:
    """One message of a thread, as returned by ``conversations.replies``."""

    ts: str
    author_id: str | None
    text: str

    @property
    def sort_key(self) -> tuple[int, int]:
        seconds, _, micros = self.ts.partition(".")
        return int(seconds or 0), int(micros or 0)


@dataclass(frozen=True)
class UrlVerification:
    challenge: str


@dataclass(frozen=True)
class IgnoredEvent:
    event_type: str | None


SlackEnvelope = UrlVerification | MentionEvent | IgnoredEvent


def parse_envelope(payload: dict[str, Any]) -> SlackEnvelope:
    """Classify a decoded Events API body.

    Raises ``ValueError`` when a known envelope is missing required fields.
    """
    envelope_type = payload.get("type")

    if envelope_type == "url_verification":
        challenge = payload.get("challenge")
        if not isinstance(challenge, str):
            raise ValueError("url_verification without challenge")
        return UrlVerification(challenge=challenge)

    if envelope_type != "event_callback":
        return IgnoredEvent(event_type=envelope_type)

    event = payload.get("event") or {}
    if event.get("type") != "app_mention":
        return IgnoredEvent(event_type=event.get("type"))

    team_id = payload.get("team_id") or event.get("team")
    ts = event.get("ts")
    user = event.get("user")
    channel = event.get("channel")
    if not (team_id and ts and user and channel):
        raise ValueError("app_mention missing team, ts, user or channel")

    return MentionEvent(
        workspace_id=team_id,
        channel_id=channel,
        # A top-level mention starts its own thread
        thread_id=event.get("thread_ts") or ts,
        author_id=user,
        mention_id=ts,
        text=event.get("text", ""),
    )
