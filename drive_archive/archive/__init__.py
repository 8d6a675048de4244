"""Archive engine for drive-archive - concurrent, incremental tree downloads."""

from .comparator import (
    DownloadAction,
    DownloadComparator,
    DownloadDecision,
    md5_matches,
    mtime_at_least,
)
from .engine import ArchiveEngine, DownloadJob, reserve_folder_paths, unique_path
from .operations import ArchiveOperations, write_body

__all__ = [
    "ArchiveEngine",
    "ArchiveOperations",
    "DownloadAction",
    "DownloadComparator",
    "DownloadDecision",
    "DownloadJob",
    "md5_matches",
    "mtime_at_least",
    "reserve_folder_paths",
    "unique_path",
    "write_body",
]
