"""Decides whether a remote file needs to be downloaded again."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from ..formats import DEFAULT_FORMAT_POLICY, FormatPolicy
from ..models import Record
from ..utils import calculate_md5, parse_optional_rfc3339


class DownloadAction(str, Enum):
    """Outcome of comparing a remote record with its local copy."""

    DOWNLOAD = "download"
    """Local copy is missing or outdated"""

    SKIP_EXISTING = "skip_existing"
    """Local copy already matches the remote file"""

    SKIP_UNSUPPORTED = "skip_unsupported"
    """Type has no downloadable representation"""


@dataclass
class DownloadDecision:
    """Represents a decision about one file."""

    action: DownloadAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""


def md5_matches(path: Path, checksum: Optional[str]) -> bool:
    """Return True if a file exists at ``path`` and its MD5 equals ``checksum``."""
    if not checksum:
        return False
    try:
        return calculate_md5(path) == checksum.lower()
    except OSError:
        return False


def mtime_at_least(path: Path, when: datetime) -> bool:
    """Return True if a file exists at ``path`` modified at or after ``when``."""
    try:
        mtime = path.stat().st_mtime
    except OSError:
        return False
    return mtime >= when.timestamp()


class DownloadComparator:
    """Compares a remote record with the file at its local destination.

    This is a heuristic: exported documents are compared by modification
    time because every export produces different bytes, binary files by
    MD5. A touched-but-unchanged local file can cause a re-download.
    """

    def __init__(self, policy: FormatPolicy = DEFAULT_FORMAT_POLICY):
        self.policy = policy

    def compare(self, record: Record, path: Path) -> DownloadDecision:
        """Decide what to do with ``record`` given the local ``path``.

        Args:
            record: Remote file metadata
            path: Destination path on disk

        Returns:
            DownloadDecision for this file
        """
        if self.policy.is_skipped(record.mime_type):
            return DownloadDecision(
                action=DownloadAction.SKIP_UNSUPPORTED,
                reason=f"No exportable format for {record.mime_type}",
            )

        if self.policy.is_exported(record.mime_type):
            remote_time = parse_optional_rfc3339(record.modified_time)
            if remote_time is not None and mtime_at_least(path, remote_time):
                return DownloadDecision(
                    action=DownloadAction.SKIP_EXISTING,
                    reason="Local export is at least as new as remote",
                )
            return DownloadDecision(
                action=DownloadAction.DOWNLOAD,
                reason="Export missing or outdated",
            )

        if md5_matches(path, record.md5_checksum):
            return DownloadDecision(
                action=DownloadAction.SKIP_EXISTING,
                reason="Checksums match",
            )

        return DownloadDecision(
            action=DownloadAction.DOWNLOAD,
            reason="File missing or checksum differs",
        )
