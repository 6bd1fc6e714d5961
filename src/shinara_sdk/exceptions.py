"""Shinara SDK error taxonomy.

Every failure surfaced by the attribution engine is a ``ShinaraError``.
Gateway-side failures carry the HTTP status (or ``UNKNOWN_STATUS`` when the
request never produced a response).
"""

from __future__ import annotations

from typing import Optional

UNKNOWN_STATUS = -1


class ShinaraError(Exception):
    """Base exception for all SDK errors."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class KeyNotSetError(ShinaraError):
    """Raised when an operation needs an API key and none was set."""

    def __init__(self, message: str = "API key is not set"):
        super().__init__(message)


class NoReferralCodeError(ShinaraError):
    """Raised when registering a user before any referral code was resolved."""

    def __init__(
        self,
        message: str = (
            "No stored referral code found. "
            "Resolve a referral code before registering a user."
        ),
    ):
        super().__init__(message)


class GatewayStatusError(ShinaraError):
    """The gateway answered with a non-success status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(f"{message} (status {status_code})", status_code)


class ValidationFailedError(GatewayStatusError):
    """API key or referral code validation was rejected."""


class RegistrationFailedError(GatewayStatusError):
    """User registration was rejected."""


class AttributionFailedError(GatewayStatusError):
    """Purchase attribution was rejected."""


class TransportError(ShinaraError):
    """The request did not complete (connection, timeout, protocol error)."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Gateway request failed: {cause!r}", UNKNOWN_STATUS)
        self.cause = cause


class DecodeError(ShinaraError):
    """A success response body was missing or had an unexpected shape."""
