"""Slack integration: webhook verification, event parsing, Web API client."""

from beatkeeper.slack.client import SlackClient
from beatkeeper.slack.events import MentionEvent, ThreadMessage, parse_envelope
from beatkeeper.slack.verification import verify_signature

__all__ = [
    "MentionEvent",
    "SlackClient",
    "ThreadMessage",
    "parse_envelope",
    "verify_signature",
]
