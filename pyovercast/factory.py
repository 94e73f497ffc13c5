"""Factory wrapping provider handles into containers."""

import logging
from typing import TYPE_CHECKING, Any, Optional

from .container import Container, File, Folder
from .provider import EntryKind, RawEntry

if TYPE_CHECKING:
    from .csp import ProviderContext

logger = logging.getLogger(__name__)


class ContainerFactory:
    """Creates files and folders bound to one provider context."""

    def __init__(self, csp: "ProviderContext"):
        self.csp = csp

    @property
    def path_prefix(self) -> Optional[str]:
        return self.csp.provider.path_prefix

    def create_file(self, handle: Any = None, name: Optional[str] = None) -> File:
        """Create a file from a handle, or a placeholder with only a name."""
        return File(
            self.csp, source=handle, name=name or "", path_prefix=self.path_prefix
        )

    def create_folder(self, handle: Any = None, name: Optional[str] = None) -> Folder:
        """Create a folder from a handle, or a placeholder with only a name."""
        return Folder(
            self.csp, source=handle, name=name or "", path_prefix=self.path_prefix
        )

    def create(self, handle: Any, kind: EntryKind) -> Container:
        if kind == EntryKind.FOLDER:
            return self.create_folder(handle)
        return self.create_file(handle)

    def create_from_entry(self, entry: RawEntry) -> Container:
        """Create a container from a listing entry that carries its handle."""
        if entry.metadata is None:
            raise ValueError(f"Listing entry {entry.key} carries no metadata")
        logger.debug(f"{self.csp.name}: discovered {entry.kind.value} {entry.key}")
        return self.create(entry.metadata, entry.kind)
