"""
Application errors for clean API error handling.

Every error carries the HTTP status the API should answer with, so handlers
and the exception handler in main.py never have to guess.
"""


class GatewayError(Exception):
    """Base for errors that map directly to an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class MissingCredentialError(GatewayError):
    """Raised when the upstream API key is not configured. Nothing is attempted."""

    status_code = 401


class UnauthorizedError(GatewayError):
    """Raised when the caller's session token is missing or invalid."""

    status_code = 401


class ConversationNotFoundError(GatewayError):
    status_code = 404


class UpstreamError(GatewayError):
    """Raised when the upstream service fails before any output reached the caller."""

    status_code = 500


class SynthesisError(GatewayError):
    """Raised when the collaborative pipeline cannot produce a final answer."""

    status_code = 500


class PipelineCancelledError(GatewayError):
    """Raised when a collaborative run is cancelled at a stage boundary."""

    status_code = 499
