"""Mime type policy: which Google types are folders, shortcuts, exported or skipped."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

FOLDER = "application/vnd.google-apps.folder"
SHORTCUT = "application/vnd.google-apps.shortcut"
SDK_PREFIX = "application/vnd.google-apps.drive-sdk."

EXPORT_TYPES: Mapping[str, str] = MappingProxyType(
    {
        "application/vnd.google-apps.document": (
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        ),
        "application/vnd.google-apps.presentation": (
            "application/vnd.openxmlformats-officedocument.presentationml.presentation"
        ),
        "application/vnd.google-apps.spreadsheet": (
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        ),
        "application/vnd.google-apps.drawing": "image/svg+xml",
        "application/vnd.google-apps.jam": "application/pdf",
        "application/vnd.google-apps.script": "application/vnd.google-apps.script+json",
        "application/vnd.google-apps.form": "application/zip",
        "application/vnd.google-apps.site": "text/plain",
    }
)

EXPORT_EXTENSIONS: Mapping[str, str] = MappingProxyType(
    {
        "application/vnd.google-apps.document": ".docx",
        "application/vnd.google-apps.presentation": ".pptx",
        "application/vnd.google-apps.spreadsheet": ".xlsx",
        "application/vnd.google-apps.drawing": ".svg",
        "application/vnd.google-apps.jam": ".pdf",
        "application/vnd.google-apps.script": ".json",
        "application/vnd.google-apps.form": ".zip",
        "application/vnd.google-apps.site": ".txt",
    }
)

SKIP_TYPES: frozenset = frozenset(
    {
        "application/vnd.google-apps.fusiontable",
        "application/vnd.google-apps.map",
    }
)


@dataclass(frozen=True)
class FormatPolicy:
    """Read-only lookup tables deciding how each mime type is archived.

    One instance is built at startup and handed to the components that
    need it; nothing mutates it afterwards.
    """

    export_types: Mapping[str, str] = field(default_factory=lambda: EXPORT_TYPES)
    """Google mime type -> mime type to export as"""

    export_extensions: Mapping[str, str] = field(
        default_factory=lambda: EXPORT_EXTENSIONS
    )
    """Google mime type -> extension appended to the local file name"""

    skip_types: frozenset = field(default_factory=lambda: SKIP_TYPES)
    """Google mime types with no downloadable representation"""

    def export_type(self, mime_type: str) -> Optional[str]:
        return self.export_types.get(mime_type)

    def extension(self, mime_type: str) -> str:
        return self.export_extensions.get(mime_type, "")

    def is_exported(self, mime_type: str) -> bool:
        return mime_type in self.export_types

    def is_skipped(self, mime_type: str) -> bool:
        return mime_type in self.skip_types or mime_type.startswith(SDK_PREFIX)


DEFAULT_FORMAT_POLICY = FormatPolicy()
