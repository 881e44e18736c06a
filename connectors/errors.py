"""
Error taxonomy for the Google integration.

Each error knows the HTTP status it maps to and the message that is safe to
show the caller.  ``api.errors`` turns them into the JSON envelope.
"""

from __future__ import annotations


class IntegrationError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Internal server error"
    requires_reauth: bool = False

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.message = message or self.default_message
        # Diagnostic text for logs only
        self.detail = detail
        super().__init__(self.message)


class Unauthenticated(IntegrationError):
    status_code = 401
    default_message = "Unauthorized"


class NotConnected(IntegrationError):
    """The user has no Google tokens on file — integration not configured."""

    status_code = 400
    default_message = "Google account not connected"


class ReauthRequired(IntegrationError):
    """Stored credentials can no longer be used; the user must reconnect."""

    status_code = 401
    default_message = "Token expired or invalid"
    requires_reauth = True


class InvalidGrant(IntegrationError):
    status_code = 400
    default_message = "Authorization code is invalid or expired"


class StateMismatch(IntegrationError):
    status_code = 400
    default_message = "Invalid state parameter"


class MissingAccessToken(IntegrationError):
    status_code = 400
    default_message = "Failed to get access token"


class RequestValidationFailed(IntegrationError):
    status_code = 400
    default_message = "Invalid request body"


class UpstreamFailure(IntegrationError):
    status_code = 500
    default_message = "External service request failed"
