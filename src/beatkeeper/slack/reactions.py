"""Emoji feedback for mention outcomes.

The pipeline never answers in text inside the conversation; the outcome
of a mention is told entirely through one reaction on the mention itself.
Emoji selection is done here, not by the orchestrator.
"""

from __future__ import annotations

from beatkeeper.db.models import SaveStatus

SAVED_EMOJI = "white_check_mark"
ALREADY_SAVED_EMOJI = "recycle"
FAILED_EMOJI = "x"
CONNECT_SENT_EMOJI = "link"

_STATUS_EMOJI: dict[SaveStatus, str] = {
    SaveStatus.SAVED: SAVED_EMOJI,
    SaveStatus.ALREADY_SAVED: ALREADY_SAVED_EMOJI,
    SaveStatus.FAILED: FAILED_EMOJI,
}


def emoji_for_status(status: SaveStatus) -> str:
    """Reaction name for a final save status."""
    return _STATUS_EMOJI[status]
