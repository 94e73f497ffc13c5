"""Data models for Drime Cloud API responses."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .utils import parse_iso_timestamp


@dataclass
class FileEntry:
    """A file or folder entry as returned by the Drime Cloud API."""

    id: int
    """Numeric entry id"""

    name: str
    """Entry name"""

    type: str
    """Entry type ("folder", "text", "image", ...)"""

    hash: str = ""
    """Hash used by download URLs"""

    file_size: int = 0
    """Size in bytes (folders report the size of their contents)"""

    parent_id: Optional[int] = None
    """Id of the parent folder, None for entries in the root"""

    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    mime: Optional[str] = None
    extension: Optional[str] = None
    workspace_id: int = 0
    path: Optional[str] = None
    """Id path of the entry, e.g. "12/34/56" """

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"

    @property
    def modified(self) -> Optional[datetime]:
        """Last modification time in local time."""
        return parse_iso_timestamp(self.updated_at or self.created_at)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileEntry":
        """Create a FileEntry from an API dictionary.

        Args:
            data: Entry as returned by the API

        Returns:
            FileEntry instance
        """
        parent_id = data.get("parent_id")
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            type=data.get("type", "") or "",
            hash=data.get("hash", "") or "",
            file_size=int(data.get("file_size") or 0),
            parent_id=int(parent_id) if parent_id else None,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            mime=data.get("mime"),
            extension=data.get("extension"),
            workspace_id=int(data.get("workspace_id") or 0),
            path=data.get("path"),
        )


@dataclass
class FileEntriesResult:
    """One page of a file entry listing."""

    entries: list[FileEntry] = field(default_factory=list)
    pagination: Optional[dict[str, Any]] = None

    @property
    def current_page(self) -> Optional[int]:
        if not self.pagination:
            return None
        return self.pagination.get("current_page")

    @property
    def last_page(self) -> Optional[int]:
        if not self.pagination:
            return None
        return self.pagination.get("last_page")

    @property
    def has_more(self) -> bool:
        """Whether another page follows this one."""
        current = self.current_page
        last = self.last_page
        return current is not None and last is not None and current < last

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "FileEntriesResult":
        """Create a result from a paginated API response.

        Args:
            data: Response with a "data" list and top-level pagination fields

        Returns:
            FileEntriesResult instance
        """
        entries = [FileEntry.from_dict(item) for item in data.get("data", [])]
        pagination = None
        if "current_page" in data:
            pagination = {
                key: data.get(key)
                for key in ("current_page", "last_page", "per_page", "total")
            }
        return cls(entries=entries, pagination=pagination)
