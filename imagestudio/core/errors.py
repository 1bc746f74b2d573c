"""
Error Taxonomy
Exceptions shared by the gateway, the staging layer and the job queue.
Each carries the HTTP status the gateway answers with.
"""

from typing import Any, Optional

import httpx


class ImageStudioError(Exception):
    """Base exception for application errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ImageStudioError):
    """Client input is malformed. Never retried, never logged as a fault."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors


class ConfigurationError(ImageStudioError):
    """The remote-service credential is missing or malformed."""

    status_code = 500

    def __init__(self, reason: str):
        super().__init__(f"Server configuration error: {reason}")
        self.reason = reason


class NotFoundError(ImageStudioError):
    """Unknown job or image id."""

    status_code = 404


class InternalError(ImageStudioError):
    """Unexpected failure; the client only sees a generic message."""

    status_code = 500

    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(message)


class RemoteServiceError(ImageStudioError):
    """
    Failure reported by (or while talking to) the remote image service.

    Args:
        message: Human readable description, kept verbatim on failed jobs
        status_code: Upstream HTTP status when there was a response
        payload: Upstream error body (usually JSON) for the client
    """

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message, status_code)
        self.upstream_status = status_code
        self.payload = payload


class TransientRemoteError(RemoteServiceError):
    """Network level failure (reset, dropped connection, upstream 5xx)."""

    retryable = True


class PermanentRemoteError(RemoteServiceError):
    """Policy violation, bad request, auth failure. Retrying will not help."""

    retryable = False


_TRANSPORT_ERRORS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
)

_TRANSIENT_MARKERS = ("econnreset", "connection error", "connection reset")

# Too generic on its own; only trusted on socket-level errors
_NETWORK_MARKER = "network"


def is_transient(exc: BaseException) -> bool:
    """Classify an exception as worth retrying."""
    if isinstance(exc, RemoteServiceError):
        return exc.retryable
    if isinstance(exc, ImageStudioError):
        return False
    if isinstance(exc, _TRANSPORT_ERRORS) or isinstance(exc, ConnectionError):
        return True
    if getattr(exc, "code", None) == "ECONNRESET":
        return True
    message = str(exc).lower()
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return True
    return isinstance(exc, OSError) and _NETWORK_MARKER in message


__all__ = [
    "ImageStudioError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "InternalError",
    "RemoteServiceError",
    "TransientRemoteError",
    "PermanentRemoteError",
    "is_transient",
]
