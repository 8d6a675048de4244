"""Configuration management for drive-archive."""

import logging
import os
from pathlib import Path
from typing import Optional

from .exceptions import DriveConfigError
from .utils import DEFAULT_INITIAL_BACKOFF, DEFAULT_MAX_TRIES, DEFAULT_WORKERS

logger = logging.getLogger(__name__)

ENV_PREFIX = "DRIVE_ARCHIVE_"


class Config:
    """Settings read from the config file, overridden by environment variables.

    The config file holds ``KEY=value`` lines using the same keys as the
    environment, e.g. ``DRIVE_ARCHIVE_USER=someone@example.com``.
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_dir = Path.home() / ".config" / "drive-archive"
        self.config_file = config_file or self.config_dir / "config"
        self._values: dict[str, str] = {}
        self._load_config_file()

    def _load_config_file(self) -> None:
        if not self.config_file.exists():
            return
        try:
            text = self.config_file.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Could not read %s: %s", self.config_file, e)
            return
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            self._values[key.strip()] = value.strip().strip('"').strip("'")

    def _get(self, name: str) -> Optional[str]:
        key = ENV_PREFIX + name
        return os.environ.get(key) or self._values.get(key) or None

    def _get_number(self, name: str, cast: type, default):
        value = self._get(name)
        if value is None:
            return default
        try:
            return cast(value)
        except ValueError as e:
            raise DriveConfigError(f"{ENV_PREFIX}{name} is not a number: {value}") from e

    @property
    def auth_file(self) -> Optional[str]:
        """Path to the service account JSON key file."""
        return self._get("AUTH_FILE")

    @property
    def user(self) -> Optional[str]:
        """Email of the user to archive."""
        return self._get("USER")

    @property
    def workers(self) -> int:
        return self._get_number("WORKERS", int, DEFAULT_WORKERS)

    @property
    def initial_backoff(self) -> float:
        return self._get_number("INITIAL_BACKOFF", float, DEFAULT_INITIAL_BACKOFF)

    @property
    def max_tries(self) -> int:
        return self._get_number("MAX_TRIES", int, DEFAULT_MAX_TRIES)


config = Config()
