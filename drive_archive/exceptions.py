"""Exceptions raised by drive-archive."""

from __future__ import annotations

from collections.abc import Iterable


class DriveArchiveError(Exception):
    """Base exception for all drive-archive errors."""


class DriveConfigError(DriveArchiveError):
    """Raised when required configuration is missing or invalid."""


class DriveAPIError(DriveArchiveError):
    """Raised when the Drive API answers with an error status.

    Attributes:
        status_code: HTTP status code of the failed response (if known)
        reasons: Google error reasons from the response body
            (e.g. ``rateLimitExceeded``)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reasons: Iterable[str] = (),
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reasons = tuple(reasons)

    def has_reason(self, reason: str) -> bool:
        return reason in self.reasons


class DriveBadRequestError(DriveAPIError):
    """400 Bad Request."""


class DriveAuthenticationError(DriveAPIError):
    """401 Unauthorized."""


class DrivePermissionError(DriveAPIError):
    """403 Forbidden (includes quota and rate limit denials)."""


class DriveNotFoundError(DriveAPIError):
    """404 Not Found."""


class DriveRateLimitError(DriveAPIError):
    """429 Too Many Requests."""


class DriveNotImplementedError(DriveAPIError):
    """501 Not Implemented."""


class DriveNetworkError(DriveArchiveError):
    """Raised on connection level failures (DNS, reset, timeout)."""


class DriveDownloadError(DriveArchiveError):
    """Raised when a file could not be written to disk."""


class NoExportableFormatError(DriveArchiveError):
    """Raised for Google types that have no downloadable representation."""
