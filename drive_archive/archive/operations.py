"""Transfers a single Drive file to disk (export or raw download)."""

import logging
import os
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Callable, Optional

import httpx

from ..api import REASON_EXPORT_SIZE_LIMIT, DriveClient
from ..exceptions import (
    DriveAPIError,
    DriveDownloadError,
    DriveNetworkError,
    NoExportableFormatError,
)
from ..formats import DEFAULT_FORMAT_POLICY, FormatPolicy
from ..models import Record
from ..retry import retry
from ..utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_TRIES,
    parse_rfc3339,
)
from .comparator import DownloadAction, DownloadComparator, DownloadDecision

logger = logging.getLogger(__name__)


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial file %s: %s", path, e)


def write_body(
    chunks: Iterable[bytes], path: Path, modified_time: Optional[str]
) -> None:
    """Write a response body to a new file and stamp it with the remote mtime.

    On any failure, including one raised while iterating ``chunks``, the
    partly written file is removed so the next run fetches it again.

    Args:
        chunks: Body content
        path: Destination file (truncated if it exists)
        modified_time: Remote RFC 3339 modification time (None leaves mtime)

    Raises:
        DriveDownloadError: If the file cannot be written or the timestamp
            cannot be parsed
    """
    try:
        _write_body(chunks, path, modified_time)
    except Exception:
        _remove_partial(path)
        raise


def _write_body(
    chunks: Iterable[bytes], path: Path, modified_time: Optional[str]
) -> None:
    try:
        with open(path, "wb") as f:
            for chunk in chunks:
                if chunk:
                    f.write(chunk)
    except OSError as e:
        raise DriveDownloadError(f"could not write file: {e}") from e

    if not modified_time:
        return

    try:
        timestamp = parse_rfc3339(modified_time).timestamp()
    except ValueError as e:
        raise DriveDownloadError(
            f"could not parse modified time {modified_time!r}: {e}"
        ) from e

    try:
        os.utime(path, (timestamp, timestamp))
    except OSError as e:
        raise DriveDownloadError(f"could not change mtime: {e}") from e


class ArchiveOperations:
    """Export and download operations with retry and incremental skipping."""

    def __init__(
        self,
        client: DriveClient,
        policy: FormatPolicy = DEFAULT_FORMAT_POLICY,
        initial_delay: float = DEFAULT_INITIAL_BACKOFF,
        max_tries: int = DEFAULT_MAX_TRIES,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize archive operations.

        Args:
            client: Drive API client
            policy: Export/skip tables
            initial_delay: Initial retry delay in seconds
            max_tries: Attempts per request (1 disables retries, <= 0 is unlimited)
            sleep: Optional sleep function used between retries
        """
        self.client = client
        self.policy = policy
        self.comparator = DownloadComparator(policy)
        self.initial_delay = initial_delay
        self.max_tries = max_tries
        self._sleep = sleep or time.sleep

    def _open(self, opener: Callable[[], httpx.Response]) -> httpx.Response:
        return retry(opener, self.initial_delay, self.max_tries, sleep=self._sleep)

    def _save(self, response: httpx.Response, record: Record, path: Path) -> None:
        try:
            write_body(
                response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE),
                path,
                record.modified_time,
            )
        except httpx.HTTPError as e:
            raise DriveNetworkError(f"could not read response body: {e}") from e
        finally:
            response.close()

    def download_file(self, record: Record, path: Path) -> DownloadDecision:
        """Bring ``path`` up to date with ``record``.

        Google documents are exported to the format chosen by the policy;
        everything else is downloaded as-is. Files whose local copy already
        matches are left alone.

        Args:
            record: Remote file metadata (the shortcut target for shortcuts)
            path: Destination on disk, including any export extension

        Returns:
            The decision that was carried out

        Raises:
            NoExportableFormatError: For types that cannot be downloaded
            DriveArchiveError: If the transfer fails
        """
        decision = self.comparator.compare(record, path)
        if decision.action == DownloadAction.SKIP_UNSUPPORTED:
            raise NoExportableFormatError(decision.reason)
        if decision.action == DownloadAction.SKIP_EXISTING:
            logger.debug("Skipping %s: %s", path, decision.reason)
            return decision

        export_type = self.policy.export_type(record.mime_type)
        if export_type is not None:
            self.export(record, export_type, path)
        else:
            self.download(record, path)
        return decision

    def export(self, record: Record, mime_type: str, path: Path) -> None:
        """Export a Google document as ``mime_type`` to ``path``.

        Drive refuses to export large documents through the API; those are
        fetched through the file's export link instead.
        """
        try:
            response = self._open(lambda: self.client.open_export(record.id, mime_type))
        except DriveAPIError as e:
            if e.has_reason(REASON_EXPORT_SIZE_LIMIT):
                logger.debug("%s too large to export, using export link", record.id)
                self.export_alt(record, mime_type, path)
                return
            raise
        self._save(response, record, path)

    def export_alt(self, record: Record, mime_type: str, path: Path) -> None:
        """Export through the direct link listed in ``record.export_links``."""
        url = record.export_links.get(mime_type)
        if not url:
            raise DriveDownloadError(
                "could not complete export request: no export link found"
            )
        response = self._open(lambda: self.client.open_url(url))
        self._save(response, record, path)

    def download(self, record: Record, path: Path) -> None:
        """Download the raw content of ``record`` to ``path``."""
        response = self._open(lambda: self.client.open_download(record.id))
        self._save(response, record, path)
