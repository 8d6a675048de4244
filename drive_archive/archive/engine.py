"""Core archive engine: walks a tree and downloads it with a worker pool."""

import logging
import os
import posixpath
import queue
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..api import DriveClient
from ..exceptions import DriveArchiveError, NoExportableFormatError
from ..formats import DEFAULT_FORMAT_POLICY, FormatPolicy
from ..models import Record
from ..output import OutputFormatter
from ..tree import Node, build_tree
from ..utils import DEFAULT_INITIAL_BACKOFF, DEFAULT_MAX_TRIES
from .comparator import DownloadAction
from .operations import ArchiveOperations

logger = logging.getLogger(__name__)

# Tells a worker that the walk is over
_STOP = object()


@dataclass
class DownloadJob:
    """One file to download, handed from the walk to a worker."""

    path: str
    """Destination relative to the output directory (unique within a tree)"""

    node: Node
    """Node to download (already resolved if it came from a shortcut)"""


def unique_path(path: str, used: dict[str, int]) -> str:
    """Return ``path`` or, if taken, the first free ``<base>_<n><ext>`` variant.

    ``used`` counts how often each candidate has been handed out and is
    updated in place. A renamed candidate is checked again, since it may
    itself collide with an earlier file.

    Examples:
        >>> used = {}
        >>> unique_path("a/Doc", used), unique_path("a/Doc", used)
        ('a/Doc', 'a/Doc_2')
    """
    while True:
        count = used.get(path, 0) + 1
        used[path] = count
        if count == 1:
            return path
        base, ext = posixpath.splitext(path)
        path = f"{base}_{count}{ext}"


def reserve_folder_paths(path: str, node: Node, used: dict[str, int]) -> None:
    """Mark the paths of the folders directly below ``node`` as taken.

    Called when the folder at ``path`` is visited. The walk is breadth
    first, so this runs before any sibling file of those folders gets a
    path, and a file named like a folder is numbered instead of taking the
    folder's path.
    """
    for child in node.children or ():
        target = child.shortcut_target or child
        if target.is_folder:
            used.setdefault(f"{path}/{child.segment}", 1)


class ArchiveEngine:
    """Downloads archive trees to a local directory."""

    def __init__(
        self,
        client: DriveClient,
        output: Optional[OutputFormatter] = None,
        policy: FormatPolicy = DEFAULT_FORMAT_POLICY,
        initial_delay: float = DEFAULT_INITIAL_BACKOFF,
        max_tries: int = DEFAULT_MAX_TRIES,
    ):
        """Initialize archive engine.

        Args:
            client: Drive API client
            output: Output formatter for per-file status lines
            policy: Export/skip tables
            initial_delay: Initial retry delay in seconds
            max_tries: Attempts per request (1 disables retries, <= 0 is unlimited)
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.policy = policy
        self.operations = ArchiveOperations(
            client, policy=policy, initial_delay=initial_delay, max_tries=max_tries
        )

    def _create_empty_stats(self) -> dict:
        """Create an empty statistics dictionary.

        Returns:
            Dictionary with zero counts for all stat categories
        """
        return {
            "directories": 0,
            "downloads": 0,
            "skips": 0,
            "errors": 0,
        }

    @staticmethod
    def _merge_stats(stats: dict, other: dict) -> None:
        for key, value in other.items():
            stats[key] = stats.get(key, 0) + value

    def archive(
        self,
        root_id: str,
        records: Iterable[Record],
        output_dir: Union[str, Path],
        workers: int = 0,
        include_orphaned: bool = True,
    ) -> dict:
        """Build both trees from ``records`` and download them in turn.

        Args:
            root_id: Id of the drive root folder
            records: Every record of the account
            output_dir: Local directory to archive into
            workers: Number of download threads (< 1 uses the CPU count)
            include_orphaned: Also download files outside the main tree

        Returns:
            Combined statistics of both trees

        Raises:
            DriveArchiveError: If a tree could not be walked
        """
        root, orphaned = build_tree(root_id, records)

        try:
            stats = self.download_tree(root, output_dir, workers)
        except DriveArchiveError as e:
            raise DriveArchiveError(
                f'could not finish downloading "{root.name}" files: {e}'
            ) from e

        if include_orphaned:
            try:
                self._merge_stats(stats, self.download_tree(orphaned, output_dir, workers))
            except DriveArchiveError as e:
                raise DriveArchiveError(
                    f'could not finish downloading "{orphaned.name}" files: {e}'
                ) from e

        return stats

    def download_tree(
        self,
        root: Node,
        output_dir: Union[str, Path],
        workers: int = 0,
    ) -> dict:
        """Download the tree rooted at ``root`` into ``output_dir``.

        The walk runs on the calling thread and is the only producer.
        Directories are created right there, so they exist before any job
        below them is queued. Files are handed to ``workers`` threads through
        a queue holding at most one job, which blocks the walk while every
        worker is busy. A failing file is reported and skipped; only a
        directory that cannot be created aborts the tree, after the workers
        have finished the jobs already handed out.

        Args:
            root: Root of the tree to download
            output_dir: Local directory to archive into
            workers: Number of download threads (< 1 uses the CPU count)

        Returns:
            Dictionary with statistics (directories, downloads, skips, errors)

        Raises:
            DriveArchiveError: If a directory could not be created
        """
        if workers < 1:
            workers = os.cpu_count() or 1
        output_dir = Path(output_dir)

        stats = self._create_empty_stats()
        used_paths: dict[str, int] = {}
        jobs: queue.Queue = queue.Queue(maxsize=1)

        def visit(path: str, node: Node) -> None:
            if node.is_folder:
                try:
                    (output_dir / path).mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise DriveArchiveError(
                        f"{path}: could not create directory: {e}"
                    ) from e
                reserve_folder_paths(path, node, used_paths)
                stats["directories"] += 1
                self.output.info(f"{path}: created directory")
                return

            # a shortcut that is still a shortcut here has no target
            if node.is_shortcut:
                stats["skips"] += 1
                self.output.warning(f"{path}: could not resolve shortcut")
                return

            path = unique_path(path + self.policy.extension(node.mime_type), used_paths)
            jobs.put(DownloadJob(path=path, node=node))

        logger.debug("Downloading %r to %s with %d workers", root, output_dir, workers)
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="drive-archive"
        ) as executor:
            futures = [
                executor.submit(self._worker, output_dir, jobs) for _ in range(workers)
            ]
            try:
                root.walk(visit)
            except DriveArchiveError as e:
                raise DriveArchiveError(f"could not finish walking tree: {e}") from e
            finally:
                for _ in futures:
                    jobs.put(_STOP)
                for future in futures:
                    self._merge_stats(stats, future.result())

        return stats

    def _worker(self, output_dir: Path, jobs: queue.Queue) -> dict:
        """Process jobs until told to stop.

        Returns:
            This worker's own counters, merged by the caller
        """
        stats = {"downloads": 0, "skips": 0, "errors": 0}
        while True:
            job = jobs.get()
            if job is _STOP:
                return stats
            self._process_job(job, output_dir, stats)

    def _process_job(self, job: DownloadJob, output_dir: Path, stats: dict) -> None:
        try:
            decision = self.operations.download_file(
                job.node.record, output_dir / job.path
            )
        except NoExportableFormatError:
            stats["skips"] += 1
            self.output.info(f"{job.path}: skipped, no exportable format")
            return
        except Exception as e:
            logger.debug("Download of %s failed", job.path, exc_info=True)
            stats["errors"] += 1
            self.output.error(f"{job.path}: could not download file: {e}")
            return

        if decision.action == DownloadAction.SKIP_EXISTING:
            stats["skips"] += 1
            self.output.info(f"{job.path}: skipped existing file")
        else:
            stats["downloads"] += 1
            self.output.success(f"{job.path}: downloaded")

    def display_summary(self, stats: dict) -> None:
        """Display archive summary."""
        if self.output.quiet:
            return
        self.output.print("")
        self.output.success(
            f"Archive complete: {stats['directories']} directories, "
            f"{stats['downloads']} downloaded, {stats['skips']} skipped, "
            f"{stats['errors']} failed"
        )
