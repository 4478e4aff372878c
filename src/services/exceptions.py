"""Error taxonomy shared by the Dropbox services."""
from __future__ import annotations

from typing import Optional


class DropboxError(RuntimeError):
    """Base class for every failure raised by the Dropbox integration."""


class ConfigurationError(DropboxError):
    """Raised for caller or deployment mistakes, e.g. a landing URI needing a missing state."""


class ProviderError(DropboxError):
    """Raised when Dropbox answers with a non-2xx status.

    ``body`` is the raw response text so callers can inspect provider error codes.
    """

    def __init__(self, status_code: int, body: str):
        super().__init__(body or f"Dropbox responded with HTTP {status_code}")
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500


class TransportError(DropboxError):
    """Raised when the HTTP round trip itself fails."""


class UnsupportedVerbError(DropboxError, ValueError):
    """Raised before any I/O when a request uses a verb outside the allowed set."""

    def __init__(self, verb: object):
        super().__init__(f"{verb} is not a valid HTTP Verb")
        self.verb = verb


class AuthorizationRequiredError(DropboxError):
    """Raised when an authenticated call is attempted for a user without a token."""

    def __init__(self, user_id: Optional[str], location: Optional[str] = None):
        super().__init__(f"User {user_id} has not connected a Dropbox account")
        self.user_id = user_id
        self.location = location


class ResponseDecodeError(DropboxError):
    """Raised when a successful response does not carry the expected JSON document."""

    def __init__(self, body: str, message: str = "Dropbox response body is not valid JSON"):
        super().__init__(message)
        self.body = body
