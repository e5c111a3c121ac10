"""Unit tests for the Spotify client, against a mocked HTTP transport.

Run with: pytest tests/unit/test_spotify_client.py -v
"""

import base64
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from beatkeeper.errors import ProviderError, ReauthRequired, SaveApiError, TokenRefreshFailed
from beatkeeper.spotify.client import SpotifyClient

TRACK = "3n3Ppam7vgaVa1iaRUc9Lp"


def _client(handler) -> SpotifyClient:
    return SpotifyClient(
        client_id="cid",
        client_secret="csecret",
        redirect_uri="https://beat.example.com/spotify/callback",
        transport=httpx.MockTransport(handler),
    )


class TestAuthorizeUrl:
    def test_contains_oauth_params(self) -> None:
        url = urlparse(_client(lambda r: httpx.Response(200)).authorize_url("state-123"))
        params = parse_qs(url.query)

        assert url.netloc == "accounts.spotify.com"
        assert url.path == "/authorize"
        assert params["client_id"] == ["cid"]
        assert params["response_type"] == ["code"]
        assert params["redirect_uri"] == ["https://beat.example.com/spotify/callback"]
        assert params["scope"] == ["user-library-modify"]
        assert params["state"] == ["state-123"]


class TestExchangeCode:
    async def test_success(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(
                200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600},
            )

        grant = await _client(handler).exchange_code("the-code")

        assert (grant.access_token, grant.refresh_token, grant.expires_in) == ("at", "rt", 3600)
        assert seen["auth"] == "Basic " + base64.b64encode(b"cid:csecret").decode()
        assert seen["form"]["grant_type"] == ["authorization_code"]
        assert seen["form"]["code"] == ["the-code"]

    async def test_rejected(self) -> None:
        client = _client(lambda r: httpx.Response(400, json={"error": "invalid_grant"}))
        with pytest.raises(ProviderError):
            await client.exchange_code("bad")

    async def test_missing_refresh_token(self) -> None:
        client = _client(
            lambda r: httpx.Response(200, json={"access_token": "at", "expires_in": 3600})
        )
        with pytest.raises(ProviderError):
            await client.exchange_code("code")

    async def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("boom", request=request)

        with pytest.raises(ProviderError):
            await _client(handler).exchange_code("code")


class TestRefreshAccessToken:
    async def test_rotated(self) -> None:
        client = _client(lambda r: httpx.Response(
            200, json={"access_token": "at2", "refresh_token": "rt2", "expires_in": 3600},
        ))
        grant = await client.refresh_access_token("rt1")
        assert (grant.access_token, grant.refresh_token) == ("at2", "rt2")

    async def test_not_rotated(self) -> None:
        client = _client(lambda r: httpx.Response(
            200, json={"access_token": "at2", "expires_in": 3600},
        ))
        grant = await client.refresh_access_token("rt1")
        assert grant.refresh_token is None

    async def test_invalid_grant_requires_reauth(self) -> None:
        client = _client(lambda r: httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Refresh token revoked"},
        ))
        with pytest.raises(ReauthRequired):
            await client.refresh_access_token("rt1")

    async def test_server_error_is_transient(self) -> None:
        client = _client(lambda r: httpx.Response(503, text="unavailable"))
        with pytest.raises(TokenRefreshFailed):
            await client.refresh_access_token("rt1")

    async def test_unreachable_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TokenRefreshFailed):
            await _client(handler).refresh_access_token("rt1")


class TestSaveTrack:
    async def test_success(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200)

        await _client(handler).save_track("at", TRACK)

        assert seen["method"] == "PUT"
        assert seen["url"] == "https://api.spotify.com/v1/me/tracks"
        assert seen["auth"] == "Bearer at"
        assert seen["body"] == {"ids": [TRACK]}

    async def test_forbidden(self) -> None:
        client = _client(lambda r: httpx.Response(
            403, json={"error": {"status": 403, "message": "Insufficient client scope"}},
        ))
        with pytest.raises(SaveApiError) as exc_info:
            await client.save_track("at", TRACK)
        assert exc_info.value.code == "spotify_403"
        assert exc_info.value.message == "Insufficient client scope"

    async def test_non_json_error(self) -> None:
        client = _client(lambda r: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(SaveApiError) as exc_info:
            await client.save_track("at", TRACK)
        assert exc_info.value.code == "spotify_502"
        assert exc_info.value.message == "Bad Gateway"

    async def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SaveApiError) as exc_info:
            await _client(handler).save_track("at", TRACK)
        assert exc_info.value.code == "spotify_unreachable"


class TestGetCurrentUser:
    async def test_profile(self) -> None:
        client = _client(lambda r: httpx.Response(200, json={"id": "sp1", "display_name": "DJ"}))
        assert await client.get_current_user("at") == {"id": "sp1", "display_name": "DJ"}

    async def test_unauthorized(self) -> None:
        client = _client(lambda r: httpx.Response(
            401, json={"error": {"status": 401, "message": "The access token expired"}},
        ))
        with pytest.raises(ProviderError):
            await client.get_current_user("at")
