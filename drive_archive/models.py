"""Data models for Drive metadata and the in-memory file tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .formats import FOLDER, SHORTCUT

# Fields requested from files.list; Record.from_api_response reads exactly these
RECORD_FIELDS = (
    "id",
    "name",
    "mimeType",
    "md5Checksum",
    "modifiedTime",
    "parents",
    "shortcutDetails/targetId",
    "exportLinks",
)


@dataclass
class Record:
    """One flat metadata entry for a remote Drive object."""

    id: str
    """Drive file id"""

    name: str
    """Display name (may contain characters invalid in local paths)"""

    mime_type: str
    """Drive mime type"""

    parents: list[str] = field(default_factory=list)
    """Ids of the parent folders"""

    md5_checksum: Optional[str] = None
    """Hex MD5 of the content (binary files only)"""

    modified_time: Optional[str] = None
    """RFC 3339 modification time, exactly as returned by the API"""

    shortcut_target_id: Optional[str] = None
    """Id of the object a shortcut points to"""

    export_links: dict[str, str] = field(default_factory=dict)
    """Export mime type -> direct export URL"""

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER

    @property
    def is_shortcut(self) -> bool:
        return self.mime_type == SHORTCUT

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Record:
        """Create a Record from a Drive v3 ``files`` resource.

        Args:
            data: Raw file resource dictionary

        Returns:
            Record instance
        """
        shortcut = data.get("shortcutDetails") or {}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            parents=list(data.get("parents") or []),
            md5_checksum=data.get("md5Checksum") or None,
            modified_time=data.get("modifiedTime") or None,
            shortcut_target_id=shortcut.get("targetId") or None,
            export_links=dict(data.get("exportLinks") or {}),
        )

