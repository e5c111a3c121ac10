"""Slack request signing verification.

Slack signs each request as ``v0=`` + hex HMAC-SHA256 over
``v0:{timestamp}:{raw body}`` keyed with the app signing secret. This must
run against the exact bytes received, before the body is parsed.
"""

from __future__ import annotations

import hashlib
import hmac
import time

from beatkeeper.errors import SignatureExpired, SignatureInvalid

VERSION = "v0"
DEFAULT_TOLERANCE_S = 300


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    basestring = f"{VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{VERSION}={digest}"


def verify_signature(
    secret: str,
    timestamp: str,
    body: bytes,
    signature: str,
    *,
    now: float | None = None,
    tolerance_s: int = DEFAULT_TOLERANCE_S,
) -> None:
    """Raise unless ``signature`` is fresh and authentic.

    Both checks always run. Staleness wins when both fail, so a replayed
    request is reported as expired even if it was also tampered with.
    """
    try:
        request_ts = int(timestamp)
    except (TypeError, ValueError):
        raise SignatureInvalid("timestamp is not an integer") from None

    current = time.time() if now is None else now
    expired = abs(current - request_ts) > tolerance_s

    expected = compute_signature(secret, timestamp, body)
    authentic = hmac.compare_digest(expected.encode(), signature.encode())

    if expired:
        raise SignatureExpired(f"timestamp outside {tolerance_s}s window")
    if not authentic:
        raise SignatureInvalid("signature mismatch")
