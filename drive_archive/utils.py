"""Utility functions for drive-archive."""

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# =============================================================================
# Defaults
# =============================================================================

# Retry configuration for transient errors
DEFAULT_INITIAL_BACKOFF: float = 1.0  # seconds
DEFAULT_MAX_TRIES: int = 8

# 0 means one worker per CPU
DEFAULT_WORKERS: int = 0

# Read size for checksums and streamed downloads (1 MB)
DEFAULT_CHUNK_SIZE: int = 1024 * 1024


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_rfc3339(timestamp_str: str) -> datetime:
    """Parse an RFC 3339 timestamp as returned by the Drive API.

    Unlike a best-effort parser this raises on malformed input, since a
    wrong mtime breaks the incremental sync check of the next run.

    Args:
        timestamp_str: Timestamp string (e.g., "2024-01-15T10:30:00.123Z")

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the timestamp cannot be parsed or has no offset

    Examples:
        >>> parse_rfc3339("2024-01-15T10:30:00Z").isoformat()
        '2024-01-15T10:30:00+00:00'
    """
    if not timestamp_str:
        raise ValueError("empty timestamp")

    value = timestamp_str.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"

    # fromisoformat() on older interpreters only accepts 3 or 6 fraction digits
    if "." in value:
        head, _, rest = value.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits += rest[0]
            rest = rest[1:]
        value = f"{head}.{digits[:6].ljust(6, '0')}{rest}"

    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        raise ValueError(f"timestamp has no UTC offset: {timestamp_str}")
    return dt


def parse_optional_rfc3339(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse a timestamp, returning None when it is missing or malformed."""
    if not timestamp_str:
        return None
    try:
        return parse_rfc3339(timestamp_str)
    except ValueError:
        return None


# =============================================================================
# Hash calculation utilities
# =============================================================================


def calculate_md5(path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Calculate the hex MD5 digest of a local file.

    Drive reports ``md5Checksum`` for every binary file, so this is what
    local copies are compared against.

    Args:
        path: Path of the file to hash
        chunk_size: Read size in bytes

    Returns:
        Lowercase hex digest

    Raises:
        OSError: If the file cannot be read
    """
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
