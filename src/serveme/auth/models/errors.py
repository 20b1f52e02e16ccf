"""Error taxonomy shared by the backend client, session manager and registry.

Failures carry a discriminated `ErrorCode` so callers can branch on the code
instead of inspecting message text. User-visible strings come from a fixed
lookup table and never from raw backend error bodies.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Discriminated failure codes."""

    AUTH = "AUTH"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE = "DUPLICATE"
    SERVER = "SERVER"
    OFFLINE = "OFFLINE"
    NETWORK = "NETWORK"
    TIMED_OUT = "TIMED_OUT"
    UNKNOWN = "UNKNOWN"


class ServeMeError(Exception):
    """Base exception for all client errors."""

    pass


class ServiceError(ServeMeError):
    """Raised when a backend operation fails.

    Attributes:
        code: Taxonomy code callers branch on
        detail: Diagnostic text for logs, never shown to users
        status_code: HTTP status, kept for UNKNOWN failures
    """

    def __init__(
        self,
        code: ErrorCode,
        detail: str | None = None,
        status_code: int | None = None,
    ):
        self.code = code
        self.detail = detail
        self.status_code = status_code
        message = self.tag if detail is None else f"{self.tag}: {detail}"
        super().__init__(message)

    @property
    def tag(self) -> str:
        """Code as text, with the HTTP status appended for unknown statuses."""
        if self.code is ErrorCode.UNKNOWN and self.status_code is not None:
            return f"{self.code.value}:{self.status_code}"
        return self.code.value


class StorageError(ServeMeError):
    """Raised when the local key-value store cannot be read or written."""

    pass


INCORRECT_CREDENTIALS_MESSAGE = "Incorrect username or password."
SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."

_USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.AUTH: "Please Log In",
    ErrorCode.FORBIDDEN: "Access Denied",
    ErrorCode.NOT_FOUND: "Server Deleted",
    ErrorCode.DUPLICATE: "Server already added",
    ErrorCode.SERVER: "Server Error",
    ErrorCode.OFFLINE: "Backend Offline",
    ErrorCode.NETWORK: "Backend Offline",
    ErrorCode.TIMED_OUT: "Connection timed out",
    ErrorCode.UNKNOWN: "Request Failed",
}


def user_message(error: BaseException | ErrorCode) -> str:
    """Map an error or error code to fixed user-facing text.

    Args:
        error: A `ServiceError`, an `ErrorCode`, or any other exception

    Returns:
        Message from the lookup table; "Request Failed" for anything untagged
    """
    if isinstance(error, ServiceError):
        error = error.code
    if isinstance(error, ErrorCode):
        return _USER_MESSAGES[error]
    return _USER_MESSAGES[ErrorCode.UNKNOWN]
