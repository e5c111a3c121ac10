"""Spotify OAuth connect flow and authorization check.

    GET /spotify/connect?workspace_id=T..&user_id=U..   → 302 to Spotify
    GET /spotify/callback?code=..&state=..              → tokens stored
    GET /spotify/verify?workspace_id=T..&user_id=U..    → profile check
"""

from __future__ import annotations

from datetime import timedelta
from html import escape

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from sqlalchemy.exc import SQLAlchemyError

from beatkeeper.core.services import Services, get_services
from beatkeeper.db.models import utcnow
from beatkeeper.errors import BeatkeeperError, ProviderError, ReauthRequired, StateInvalidOrExpired

logger = structlog.get_logger()

router = APIRouter(prefix="/spotify", tags=["spotify"])

_SUCCESS_PAGE = """<!doctype html>
<html><head><meta charset="utf-8"><title>Spotify connected</title></head>
<body><h1>Spotify connected</h1>
<p>Mention the app in any thread with a Spotify link to save the track.</p>
<p><small>{workspace_id} / {user_id}</small></p></body></html>"""


@router.get("/connect")
async def connect(
    workspace_id: str,
    user_id: str,
    services: Services = Depends(get_services),
) -> RedirectResponse:
    logger.info("spotify_connect_started", workspace_id=workspace_id, user_id=user_id)
    state = services.state_store.issue(workspace_id, user_id)
    return RedirectResponse(services.spotify.authorize_url(state), status_code=302)


@router.get("/callback")
async def callback(
    state: str | None = None,
    code: str | None = None,
    error: str | None = None,
    services: Services = Depends(get_services),
) -> Response:
    # The state is consumed even when the user denied access
    try:
        workspace_id, user_id = services.state_store.consume(state or "")
    except StateInvalidOrExpired:
        return JSONResponse({"error": "Invalid or expired OAuth state"}, status_code=400)

    if error or not code:
        logger.warning(
            "spotify_authorization_denied",
            workspace_id=workspace_id,
            user_id=user_id,
            error=error,
        )
        return JSONResponse({"error": "Spotify authorization was not granted"}, status_code=400)

    try:
        grant = await services.spotify.exchange_code(code)
    except ProviderError as e:
        logger.error("spotify_code_exchange_error", workspace_id=workspace_id, error=str(e))
        return JSONResponse({"error": "Spotify API error"}, status_code=502)

    expires_at = utcnow() + timedelta(seconds=grant.expires_in)
    try:
        await services.credentials.upsert(
            workspace_id,
            user_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or "",
            expires_at=expires_at,
        )
    except SQLAlchemyError as e:
        logger.error("spotify_credentials_store_failed", workspace_id=workspace_id, error=str(e))
        return JSONResponse({"error": "Storage error"}, status_code=503)
    logger.info(
        "spotify_connected",
        workspace_id=workspace_id,
        user_id=user_id,
        expires_in=grant.expires_in,
    )
    return HTMLResponse(
        _SUCCESS_PAGE.format(workspace_id=escape(workspace_id), user_id=escape(user_id))
    )


@router.get("/verify")
async def verify(
    workspace_id: str,
    user_id: str,
    services: Services = Depends(get_services),
) -> JSONResponse:
    record = await services.credentials.get(workspace_id, user_id)
    if record is None:
        return JSONResponse({"error": "User not connected to Spotify"}, status_code=404)

    try:
        token = await services.tokens.resolve(record)
    except ReauthRequired:
        return JSONResponse({"error": "Spotify authorization revoked, reconnect"}, status_code=401)
    except BeatkeeperError as e:
        logger.error("spotify_verify_token_failed", workspace_id=workspace_id, error=str(e))
        return JSONResponse({"error": "Spotify API error"}, status_code=502)

    try:
        profile = await services.spotify.get_current_user(token.token)
    except ProviderError as e:
        logger.error("spotify_verify_profile_failed", workspace_id=workspace_id, error=str(e))
        return JSONResponse({"error": "Spotify API error"}, status_code=502)

    provider_user_id = profile.get("id")
    if provider_user_id and provider_user_id != record.provider_user_id:
        await services.credentials.set_provider_user_id(record.id, provider_user_id)

    logger.info(
        "spotify_verified",
        workspace_id=workspace_id,
        user_id=user_id,
        provider_user_id=provider_user_id,
        token_refreshed=token.refreshed,
    )
    return JSONResponse({
        "success": True,
        "provider_user_id": provider_user_id,
        "display_name": profile.get("display_name"),
        "token_refreshed": token.refreshed,
    })
