"""drive-archive - mirror a Google Drive account onto the local filesystem."""

from .api import DriveClient
from .exceptions import (
    DriveAPIError,
    DriveArchiveError,
    DriveAuthenticationError,
    DriveBadRequestError,
    DriveConfigError,
    DriveDownloadError,
    DriveNetworkError,
    DriveNotFoundError,
    DriveNotImplementedError,
    DrivePermissionError,
    DriveRateLimitError,
    NoExportableFormatError,
)
from .models import Record
from .retry import retry, should_retry
from .tree import Node, build_tree, walk

__all__ = [
    "DriveClient",
    "DriveAPIError",
    "DriveArchiveError",
    "DriveAuthenticationError",
    "DriveBadRequestError",
    "DriveConfigError",
    "DriveDownloadError",
    "DriveNetworkError",
    "DriveNotFoundError",
    "DriveNotImplementedError",
    "DrivePermissionError",
    "DriveRateLimitError",
    "NoExportableFormatError",
    "Node",
    "Record",
    "build_tree",
    "retry",
    "should_retry",
    "walk",
]
