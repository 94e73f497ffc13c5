"""Capability interface every storage provider implements.

The core never talks to a vendor API directly. Each backend is wrapped in a
class satisfying :class:`StorageProvider`; handles returned by it are opaque
to the core and only ever passed back to the same provider.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .transfer import CancellationToken, TransferCallback


class EntryKind(str, Enum):
    """Kind of a provider entry."""

    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True)
class RawEntry:
    """One item of a provider's child listing."""

    key: str
    """Identifying key; equals the id the provider reports for the handle"""

    kind: EntryKind
    """Whether the entry is a file or a folder"""

    metadata: Any = None
    """Provider handle if the listing carries it, None if it must be fetched"""

    @property
    def is_folder(self) -> bool:
        return self.kind == EntryKind.FOLDER


@dataclass
class ListingPage:
    """A page of a child listing."""

    entries: list[RawEntry] = field(default_factory=list)
    next_page_token: Optional[str] = None


@dataclass(frozen=True)
class EntryInfo:
    """Fields the core reads out of a provider handle."""

    id: str
    name: str
    kind: EntryKind = EntryKind.FILE
    size: int = 0
    modified: Optional[datetime] = None
    path: Optional[str] = None
    """Raw provider path, if the provider has one (prefix not yet stripped)"""


@runtime_checkable
class StorageProvider(Protocol):
    """Protocol that all storage backends must implement."""

    name: str
    """Human-readable provider name"""

    is_local: bool
    """True for the local filesystem backend"""

    path_prefix: str
    """Prefix stripped from raw provider paths"""

    supports_batch_metadata: bool
    """Whether fetch_metadata_batch is cheaper than repeated fetch_metadata"""

    def authorise(self) -> None:
        """Verify credentials. Raises OvercastAuthorisationError on rejection."""
        ...

    def root(self) -> Any:
        """Return the handle of the provider's logical root folder."""
        ...

    def describe(self, handle: Any) -> EntryInfo:
        """Read id, name, kind, size, date and raw path out of a handle."""
        ...

    def list_children(
        self, folder_handle: Any, page_token: Optional[str] = None
    ) -> ListingPage:
        """List one page of a folder's children."""
        ...

    def fetch_metadata(self, handle: Any) -> Optional[Any]:
        """Re-fetch a handle (or a bare key). Returns None if it is gone."""
        ...

    def fetch_metadata_batch(self, keys: Iterable[str]) -> Iterable[Any]:
        """Fetch handles for many keys at once."""
        ...

    def create_folder(self, parent_handle: Any, name: str) -> Any:
        """Create a folder and return its handle."""
        ...

    def copy(self, handle: Any, destination_handle: Any) -> Any:
        """Copy an entry into a folder and return the new handle."""
        ...

    def move(self, handle: Any, destination_handle: Any) -> Any:
        """Move an entry into a folder and return the updated handle."""
        ...

    def rename(self, handle: Any, new_name: str) -> Any:
        """Rename an entry and return the updated handle."""
        ...

    def delete(self, handle: Any) -> None:
        """Delete an entry."""
        ...

    def upload(
        self,
        local_path: Path,
        parent_handle: Any,
        name: str,
        callback: "TransferCallback",
        token: "CancellationToken",
    ) -> Any:
        """Upload a local file; blocks until done and returns the new handle."""
        ...

    def download(
        self,
        handle: Any,
        local_path: Path,
        callback: "TransferCallback",
        token: "CancellationToken",
    ) -> Any:
        """Download an entry to a local path; blocks until done."""
        ...

    def free_space(self) -> int:
        """Return the remaining space in bytes."""
        ...
