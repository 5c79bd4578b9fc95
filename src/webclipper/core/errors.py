"""
Exception hierarchy for webclipper.

All errors raised by the core carry a human-readable message plus optional
keyword context, following one hierarchy:

Exception Hierarchy:
    ClipperError (base)
    ├── AuthError (missing, invalid or expired credentials)
    ├── ApiError (non-success response from the task service)
    ├── NetworkError (server unreachable)
    ├── CaptureTimeoutError (page never answered)
    ├── CaptureRejectedError (page cannot be captured right now)
    ├── ExtractionError (page-side extraction failed)
    ├── UploadError (a stage of the upload transaction failed)
    └── InvalidTransitionError (capture status state machine misuse)

Example:
    >>> from webclipper.core.errors import ApiError
    >>> try:
    ...     raise ApiError(500, "Internal error", path="/todolist")
    ... except ApiError as e:
    ...     print(e.status, e.context["path"])
    500 /todolist
"""

from __future__ import annotations

from enum import Enum

CANNOT_REACH_SERVER = "Cannot reach server"


class ClipperError(Exception):
    """
    Base exception for all webclipper errors.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class AuthErrorKind(str, Enum):
    """Why an authenticated call could not be made."""

    NOT_AUTHENTICATED = "not_authenticated"
    INVALID_CREDENTIAL = "invalid_credential"
    SESSION_EXPIRED = "session_expired"


_AUTH_MESSAGES = {
    AuthErrorKind.NOT_AUTHENTICATED: "Not logged in",
    AuthErrorKind.INVALID_CREDENTIAL: "Invalid credentials",
    AuthErrorKind.SESSION_EXPIRED: "Session expired, please login again",
}


class AuthError(ClipperError):
    """
    Exception for credential problems.

    Attributes:
        kind: Which authentication failure occurred
    """

    def __init__(self, kind: AuthErrorKind, message: str | None = None, **context: object) -> None:
        super().__init__(message or _AUTH_MESSAGES[kind], **context)
        self.kind = kind


class ApiError(ClipperError):
    """
    Exception for non-success responses from the task service.

    Attributes:
        status: HTTP status code returned by the server
    """

    def __init__(self, status: int, message: str | None = None, **context: object) -> None:
        super().__init__(message or f"API error: {status}", status=status, **context)
        self.status = status


class NetworkError(ClipperError):
    """
    Exception for transport failures (DNS, refused connection, timeouts).

    The original httpx exception is preserved via ``__cause__``.
    """


class CaptureTimeoutError(ClipperError):
    """Raised when the page does not report a capture result in time."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__("Capture timed out", timeout_seconds=timeout_seconds)
        self.timeout_seconds = timeout_seconds


class CaptureRejectedError(ClipperError):
    """Raised when a capture cannot start (internal page, capture already running)."""


class ExtractionError(ClipperError):
    """Raised when page-side snapshot or markdown extraction fails."""


class UploadErrorKind(str, Enum):
    """Classification for upload failures that bypass the API client."""

    TRANSFER_FAILED = "transfer_failed"


class UploadError(ClipperError):
    """
    Exception for a failed upload transaction stage.

    The message always names the stage that failed. When the failure came
    from the API client (auth, API or network error) it is kept as
    ``__cause__``.

    Attributes:
        stage: Name of the stage that failed ("prepare", "transfer", ...)
        kind: Optional failure classification (transfer leg only)
    """

    def __init__(
        self,
        stage: str,
        message: str,
        *,
        kind: UploadErrorKind | None = None,
        **context: object,
    ) -> None:
        super().__init__(f"Upload failed at {stage} stage: {message}", stage=stage, **context)
        self.stage = stage
        self.kind = kind
        self.detail = message


class InvalidTransitionError(ClipperError):
    """Raised when the capture status is moved along a forbidden edge."""


def describe_error(error: BaseException) -> str:
    """
    Convert an exception into the short message shown to the user.

    Network failures are special-cased to a friendlier message, including
    when they caused an upload stage to fail.

    Args:
        error: Exception raised during a capture, login or settings test

    Returns:
        Message suitable for the control surface
    """
    if isinstance(error, NetworkError):
        return CANNOT_REACH_SERVER
    if isinstance(error, UploadError):
        cause = error.__cause__
        if isinstance(cause, NetworkError):
            return CANNOT_REACH_SERVER
        if isinstance(cause, AuthError):
            return cause.message
        return error.message
    if isinstance(error, ClipperError):
        return error.message
    return str(error) or type(error).__name__


__all__ = [
    "CANNOT_REACH_SERVER",
    "ApiError",
    "AuthError",
    "AuthErrorKind",
    "CaptureRejectedError",
    "CaptureTimeoutError",
    "ClipperError",
    "ExtractionError",
    "InvalidTransitionError",
    "NetworkError",
    "UploadError",
    "UploadErrorKind",
    "describe_error",
]
