from enum import Enum


class ErrorCode(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    STORAGE_WRITE_FAILED = "storage_write_failed"


class HeadspaceError(Exception):
    """Base class for errors raised inside the companion core."""


class NotFound(HeadspaceError):
    """Raised when a lookup names something that does not exist."""


class StorageWriteFailed(HeadspaceError):
    """Raised when the persisted store rejects a write or remove."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Write to {key!r} failed: {reason}")
        self.key = key
        self.reason = reason


class ExternalApiFailure(HeadspaceError):
    """Network, HTTP status or transport failure calling an external API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(ExternalApiFailure):
    """The API answered 2xx but the body had an unexpected shape."""
