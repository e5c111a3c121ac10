"""Spotify Accounts + Web API wrapper.

Covers the OAuth code exchange and refresh grant against the Accounts
service, and the two Web API calls the pipeline uses: saving a track to
the user's library and reading the user's profile.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from beatkeeper.errors import ProviderError, ReauthRequired, SaveApiError, TokenRefreshFailed

logger = structlog.get_logger()

ACCOUNTS_BASE = "https://accounts.spotify.com"
API_BASE = "https://api.spotify.com/v1"
SCOPE = "user-library-modify"
_TIMEOUT = 15.0


@dataclass(frozen=True)
class TokenGrant:
    """Token endpoint response. ``refresh_token`` is None when not rotated."""

    access_token: str
    refresh_token: str | None
    expires_in: int


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return str(err.get("message") or err)
    if err:
        return str(err)
    return resp.text[:200]


def _oauth_error(resp: httpx.Response) -> str | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    err = body.get("error") if isinstance(body, dict) else None
    return err if isinstance(err, str) else None


class SpotifyClient:
    """Async client for the Spotify Accounts service and Web API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = _TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._timeout = timeout
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def authorize_url(self, state: str) -> str:
        query = urlencode({
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_uri,
            "scope": SCOPE,
            "state": state,
        })
        return f"{ACCOUNTS_BASE}/authorize?{query}"

    async def _token_request(self, form: dict[str, str]) -> httpx.Response:
        async with self._http() as client:
            return await client.post(
                f"{ACCOUNTS_BASE}/api/token",
                data=form,
                auth=(self._client_id, self._client_secret),
            )

    @staticmethod
    def _parse_grant(resp: httpx.Response) -> TokenGrant:
        data = resp.json()
        access_token = data.get("access_token")
        expires_in = data.get("expires_in")
        if not access_token or expires_in is None:
            raise ValueError("token response missing access_token or expires_in")
        return TokenGrant(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=int(expires_in),
        )

    async def exchange_code(self, code: str) -> TokenGrant:
        """Trade an authorization code for a token pair."""
        try:
            resp = await self._token_request({
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            })
        except httpx.HTTPError as e:
            logger.error("spotify_code_exchange_unreachable", error=str(e))
            raise ProviderError(f"token exchange failed: {e}") from e

        if resp.status_code >= 400:
            logger.error(
                "spotify_code_exchange_failed",
                status=resp.status_code,
                detail=_error_detail(resp),
            )
            raise ProviderError(f"token exchange rejected ({resp.status_code})")

        try:
            grant = self._parse_grant(resp)
        except ValueError as e:
            raise ProviderError(str(e)) from e
        if not grant.refresh_token:
            raise ProviderError("token exchange returned no refresh token")
        return grant

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Run the refresh grant.

        ``invalid_grant`` means the refresh token is dead and the user has
        to reconnect; any other failure is reported as transient.
        """
        try:
            resp = await self._token_request({
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            })
        except httpx.HTTPError as e:
            logger.warning("spotify_refresh_unreachable", error=str(e))
            raise TokenRefreshFailed(str(e)) from e

        if resp.status_code >= 400:
            oauth_error = _oauth_error(resp)
            logger.warning(
                "spotify_refresh_rejected",
                status=resp.status_code,
                oauth_error=oauth_error,
            )
            if oauth_error == "invalid_grant":
                raise ReauthRequired("refresh token rejected")
            raise TokenRefreshFailed(f"refresh failed ({resp.status_code})")

        try:
            return self._parse_grant(resp)
        except ValueError as e:
            raise TokenRefreshFailed(str(e)) from e

    async def save_track(self, access_token: str, track_id: str) -> None:
        """Add a track to the user's Liked Songs. Saving twice is harmless."""
        try:
            async with self._http() as client:
                resp = await client.put(
                    f"{API_BASE}/me/tracks",
                    headers={"Authorization": f"Bearer {access_token}"},
                    json={"ids": [track_id]},
                )
        except httpx.HTTPError as e:
            logger.error("spotify_save_unreachable", track_id=track_id, error=str(e))
            raise SaveApiError("spotify_unreachable", str(e)) from e

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.error(
                "spotify_save_failed",
                track_id=track_id,
                status=resp.status_code,
                detail=detail,
            )
            raise SaveApiError(f"spotify_{resp.status_code}", detail)

    async def get_current_user(self, access_token: str) -> dict[str, Any]:
        try:
            async with self._http() as client:
                resp = await client.get(
                    f"{API_BASE}/me",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            raise ProviderError(f"profile fetch failed: {e}") from e

        if resp.status_code >= 400:
            logger.error(
                "spotify_profile_failed",
                status=resp.status_code,
                detail=_error_detail(resp),
            )
            raise ProviderError(f"profile fetch rejected ({resp.status_code})")
        return resp.json()
