"""Error taxonomy for the mention pipeline and its HTTP boundaries.

Boundary errors (signature, OAuth state) are rejected synchronously with a
generic status. Pipeline errors are raised by collaborators and turned
into an emoji reaction plus a ledger entry by the orchestrator.
"""

from __future__ import annotations


class BeatkeeperError(Exception):
    """Root exception for all beatkeeper domain errors."""

    code = "internal_error"


# ── Webhook boundary ───────────────────────────────────────────────────

class SignatureMissing(BeatkeeperError):
    code = "signature_missing"


class SignatureInvalid(BeatkeeperError):
    code = "signature_invalid"


class SignatureExpired(BeatkeeperError):
    code = "signature_expired"


# ── OAuth boundary ─────────────────────────────────────────────────────

class StateInvalidOrExpired(BeatkeeperError):
    code = "state_invalid_or_expired"


# ── Mention pipeline ───────────────────────────────────────────────────

class NoLinkFound(BeatkeeperError):
    code = "NoLinkFound"


class AuthRequired(BeatkeeperError):
    code = "AuthRequired"


class ReauthRequired(BeatkeeperError):
    """The provider rejected the refresh token; the user must reconnect."""

    code = "ReauthRequired"


class TokenRefreshFailed(BeatkeeperError):
    """Transient failure while refreshing; not retried."""

    code = "TokenRefreshFailed"


class SaveApiError(BeatkeeperError):
    """The provider refused or failed the library save."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message


class ProviderError(BeatkeeperError):
    """Chat or music provider call failed outside the save path."""

    code = "provider_error"


# ── Storage ────────────────────────────────────────────────────────────

class DuplicateKey(BeatkeeperError):
    """A unique-key constraint rejected the insert: another writer won."""

    code = "duplicate_key"
