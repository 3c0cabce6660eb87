"""Exceptions raised by the catalog sync client."""

from typing import Optional


class SyncError(Exception):
    """Base exception for catalog sync operations."""
    pass


class ApiError(SyncError):
    """The backend answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class Unauthorized(ApiError):
    """Missing, invalid or expired token."""
    pass


class NotFound(ApiError):
    """Unknown item id."""
    pass


class ValidationError(ApiError):
    """Malformed payload, rejected server-side."""
    pass


class NetworkError(SyncError):
    """Transport failure or undecodable response."""
    pass


class DecodeError(NetworkError):
    """Response body could not be decoded into the expected shape."""
    pass


class StorageUnavailable(SyncError):
    """Session persistence layer is inaccessible."""
    pass


_STATUS_ERRORS: dict[int, type[ApiError]] = {
    400: ValidationError,
    401: Unauthorized,
    403: Unauthorized,
    404: NotFound,
    422: ValidationError,
}


def error_for_status(status_code: int, message: str) -> ApiError:
    """Build the exception matching an HTTP error status."""
    error_cls = _STATUS_ERRORS.get(status_code, ApiError)
    return error_cls(message, status_code=status_code)
