"""Slack Events API webhook.

The raw body is verified before it is parsed; a failed check gets a bare
401 with no hint of which check failed. Mentions are handed to the
background runner and acknowledged at once; a redelivered mention is
acknowledged without being processed again.
"""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from beatkeeper.core.services import Services, get_services
from beatkeeper.errors import SignatureExpired, SignatureInvalid, SignatureMissing
from beatkeeper.slack.events import IgnoredEvent, UrlVerification, parse_envelope
from beatkeeper.slack.verification import verify_signature

logger = structlog.get_logger()

router = APIRouter(prefix="/slack", tags=["slack"])

TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_HEADER = "X-Slack-Signature"
RETRY_NUM_HEADER = "X-Slack-Retry-Num"


@router.post("/events")
async def slack_events(request: Request, services: Services = Depends(get_services)) -> Response:
    body = await request.body()
    timestamp = request.headers.get(TIMESTAMP_HEADER)
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        if not timestamp or not signature:
            raise SignatureMissing("signature headers missing")
        verify_signature(
            services.settings.slack_signing_secret,
            timestamp,
            body,
            signature,
            tolerance_s=services.settings.signature_tolerance_s,
        )
    except (SignatureMissing, SignatureInvalid, SignatureExpired) as e:
        logger.warning("slack_signature_rejected", reason=e.code)
        return Response(status_code=401)

    try:
        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError("payload is not an object")
        envelope = parse_envelope(payload)
    except ValueError as e:
        logger.warning("slack_payload_invalid", error=str(e))
        return JSONResponse({"error": "invalid payload"}, status_code=400)

    if isinstance(envelope, UrlVerification):
        logger.info("slack_url_verification")
        return JSONResponse({"challenge": envelope.challenge})

    if isinstance(envelope, IgnoredEvent):
        logger.debug("slack_event_ignored", event_type=envelope.event_type)
        return JSONResponse({"ok": True})

    logger.info(
        "app_mention",
        workspace_id=envelope.workspace_id,
        user_id=envelope.author_id,
        channel_id=envelope.channel_id,
        thread_id=envelope.thread_id,
        retry_num=request.headers.get(RETRY_NUM_HEADER),
    )
    task = services.runner.spawn_once(
        f"mention:{envelope.channel_id}:{envelope.mention_id}",
        services.orchestrator.handle_mention,
        envelope,
    )
    if task is None:
        logger.info("app_mention_redelivery_ignored", channel_id=envelope.channel_id)
    return JSONResponse({"ok": True})
