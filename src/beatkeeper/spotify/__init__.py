"""Spotify integration: link parsing, OAuth state, token lifecycle, Web API client."""

from beatkeeper.spotify.client import SpotifyClient, TokenGrant
from beatkeeper.spotify.oauth import CsrfStateStore
from beatkeeper.spotify.parser import extract, select_first
from beatkeeper.spotify.tokens import TokenLifecycleManager

__all__ = [
    "CsrfStateStore",
    "SpotifyClient",
    "TokenGrant",
    "TokenLifecycleManager",
    "extract",
    "select_first",
]
