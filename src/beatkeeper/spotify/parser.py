"""Spotify track link extraction.

Recognizes the web form ``https://open.spotify.com/track/<id>[?si=…]``
(optionally with an ``intl-xx/`` locale segment) and the URI form
``spotify:track:<id>``. Track IDs are exactly 22 base62 characters;
anything else is skipped, never an error.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator

from beatkeeper.slack.events import ThreadMessage

TRACK_ID_LENGTH = 22

_TRACK_RE = re.compile(
    r"(?:"
    r"https?://open\.spotify\.com/(?:intl-[a-z]{2}(?:-[a-z]{2})?/)?track/"
    r"|spotify:track:"
    r")"
    r"([A-Za-z0-9]+)"
)


def extract(text: str) -> Iterator[str]:
    """Yield track IDs in left-to-right order of appearance."""
    for match in _TRACK_RE.finditer(text):
        candidate = match.group(1)
        if len(candidate) == TRACK_ID_LENGTH:
            yield candidate


def extract_all(text: str) -> list[str]:
    return list(extract(text))


def select_first(messages: Iterable[ThreadMessage]) -> str | None:
    """First track ID of the earliest message that has one.

    Messages are scanned in ascending timestamp order whatever order they
    arrive in.
    """
    for message in sorted(messages, key=lambda m: m.sort_key):
        for track_id in extract(message.text):
            return track_id
    return None
