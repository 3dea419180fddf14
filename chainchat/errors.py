"""Error taxonomy for the chat service.

Every error raised across module boundaries derives from ``ChatError`` so the
API layer can render a stable ``{"error": ..., "details": ...}`` payload with
the right status code.
"""
from __future__ import annotations


class ChatError(Exception):
    """Base error.

    Attributes:
        message: user-facing message, rendered as the ``error`` field.
        status_code: HTTP status used when the error reaches the API layer.
        details: optional underlying cause, rendered as ``details``.
    """

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None, details: str | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_payload(self) -> dict[str, str]:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ChatError):
    """Bad or missing input. Never retried."""

    status_code = 400


class NotFoundError(ChatError):
    """Unknown user or conversation."""

    status_code = 404


class ConfigurationError(ChatError):
    """Missing operator configuration, e.g. the hosted API key."""

    status_code = 500


class UpstreamError(ChatError):
    """Non-2xx or malformed reply from a hosted/local inference endpoint."""

    status_code = 502

    def __init__(self, message: str, *, provider: str, status: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.upstream_status = status


class AutomationError(ChatError):
    """Browser, page or selector failure in the scraped-model client."""

    status_code = 502


class ChainError(ChatError):
    """A chained step failed; remaining steps were not attempted."""

    def __init__(self, message: str, *, stage: str):
        super().__init__(message)
        self.stage = stage
