"""Provider-agnostic tree of files and folders.

A :class:`Container` wraps one provider handle (its ``source``) and mirrors
the handle's id, name, size and date. Folders own their children; every child
keeps a weak back-reference to its one owning folder. Local and remote trees
use the same classes and differ only by the provider context they belong to.
"""

import logging
import threading
import weakref
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from .exceptions import (
    OvercastAccessError,
    OvercastCreationError,
    OvercastError,
    OvercastOperationError,
)
from .lifecycle import OperationLifecycle
from .operations import (
    ListenerRegistry,
    Operation,
    OperationEvent,
    OperationListener,
    OperationState,
)
from .provider import EntryKind
from .utils import ROOT_PATH, join_path, strip_path_prefix

if TYPE_CHECKING:
    from .csp import ProviderContext

logger = logging.getLogger(__name__)


class Container:
    """Base class for anything that is a file or a folder, local or remote."""

    is_folder: bool = False

    def __init__(
        self,
        csp: "ProviderContext",
        source: Any = None,
        name: str = "",
        path_prefix: Optional[str] = None,
    ):
        """Initialize a container.

        Args:
            csp: Provider context the container belongs to
            source: Provider handle backing the container (None for a
                placeholder that is not created yet)
            name: Name to use while there is no source
            path_prefix: Provider prefix stripped from raw paths
        """
        self.csp = csp
        self.size: int = 0
        self.modified: Optional[datetime] = None
        self.listeners = ListenerRegistry()

        self._id: Optional[str] = None
        self._name = name
        self._path = ROOT_PATH
        self._raw_path: Optional[str] = None
        self._path_prefix = path_prefix
        self._source: Any = None
        self._parent_ref: Optional[weakref.ReferenceType] = None
        self._mapping_ref: Optional[weakref.ReferenceType] = None
        self._lock = threading.RLock()

        if source is not None:
            self.source = source
        else:
            self._refresh_path()

    # =========================
    # Identity and path
    # =========================

    @property
    def id(self) -> Optional[str]:
        """Provider-unique id (None until the container has a source)."""
        return self._id

    @id.setter
    def id(self, value: Optional[str]) -> None:
        self._set_id(value)

    def _set_id(self, value: Optional[str]) -> None:
        old_key = self.child_key()
        self._id = value
        parent = self.parent
        # The owning folder stores us under our id
        if parent is not None and self.child_key() != old_key:
            parent._rekey(self, old_key)

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value
        self._refresh_path()

    @property
    def path(self) -> str:
        """Logical path, always starting at the provider's root."""
        return self._path

    @path.setter
    def path(self, value: Optional[str]) -> None:
        # A raw path only decides the logical path while there is no parent
        self._raw_path = value
        self._refresh_path()

    @property
    def path_prefix(self) -> Optional[str]:
        return self._path_prefix

    def apply_path_prefix(self, prefix: Optional[str]) -> None:
        """Strip a provider prefix from the raw path.

        The prefix is always stripped from the raw provider path, so applying
        the same prefix again leaves the path unchanged.
        """
        self._path_prefix = prefix
        self._refresh_path()

    @property
    def source(self) -> Any:
        """Opaque provider handle; owned by the provider collaborator."""
        return self._source

    @source.setter
    def source(self, value: Any) -> None:
        self._source = value
        self.update_info()

    @property
    def parent(self) -> Optional["Folder"]:
        """Owning folder, or None for a root or detached container."""
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @parent.setter
    def parent(self, value: Optional["Folder"]) -> None:
        self._parent_ref = weakref.ref(value) if value is not None else None
        self._refresh_path()

    @property
    def is_local(self) -> bool:
        return self.csp.is_local

    def update_info(self) -> None:
        """Refresh id, name, size and date from the current source."""
        if self._source is None:
            self._refresh_path()
            return

        info = self.csp.provider.describe(self._source)
        self._set_id(info.id)
        self._name = info.name
        self.size = info.size
        self.modified = info.modified
        self._raw_path = info.path
        self._refresh_path()

    def _refresh_path(self) -> None:
        parent = self.parent
        if parent is not None:
            self._path = join_path(parent.path, self._name)
        elif self._raw_path is not None:
            self._path = strip_path_prefix(self._raw_path, self._path_prefix) or ROOT_PATH
        else:
            self._path = join_path(ROOT_PATH, self._name)

    # =========================
    # Mapping
    # =========================

    @property
    def mapping(self) -> Optional["Container"]:
        """Counterpart container of the opposite locality, if linked."""
        if self._mapping_ref is None:
            return None
        return self._mapping_ref()

    def link_mapping(self, other: Optional["Container"]) -> None:
        """Link this container and its counterpart in both directions."""
        if other is None:
            self._mapping_ref = None
            return
        self._mapping_ref = weakref.ref(other)
        other._mapping_ref = weakref.ref(self)

    # =========================
    # Provider queries
    # =========================

    def exists(self) -> bool:
        """Check whether the entry still exists at the provider.

        Raises:
            OvercastAccessError: If the provider cannot tell
        """
        if self._source is None:
            return False
        try:
            return self.csp.provider.fetch_metadata(self._source) is not None
        except OvercastAccessError:
            raise
        except OvercastError as e:
            raise OvercastAccessError(
                f"Couldn't determine existence of {self.path}! {e}"
            ) from e

    def update_from_source(self) -> None:
        """Re-fetch the handle from the provider and refresh the fields."""
        reference = self._source if self._source is not None else self._id
        try:
            handle = self.csp.provider.fetch_metadata(reference)
        except OvercastError as e:
            raise OvercastOperationError(f"Couldn't update info! {e}") from e
        if handle is None:
            raise OvercastOperationError(
                f"Couldn't update info! {self.path} no longer exists"
            )
        self.source = handle

    # =========================
    # Listeners
    # =========================

    def add_listener(self, listener: OperationListener, operation: Operation) -> None:
        self.listeners.add_listener(listener, operation)

    def add_temporary_listeners(
        self, operation: Operation, *listeners: OperationListener
    ) -> None:
        self.listeners.add_temporary_listeners(operation, *listeners)

    def remove_listener(
        self, listener: OperationListener, operation: Optional[Operation] = None
    ) -> None:
        self.listeners.remove_listener(listener, operation)

    def notify_listeners(
        self,
        operation: Operation,
        state: OperationState,
        progress: float,
        affected: Optional["Container"] = None,
    ) -> None:
        """Notify durable and temporary listeners of an operation."""
        self.listeners.notify(
            OperationEvent(
                container=self,
                operation=operation,
                state=state,
                progress=progress,
                affected=affected,
            )
        )

    # =========================
    # Lifecycle operations
    # =========================

    def copy(
        self,
        destination: "Folder",
        *listeners: OperationListener,
        overwrite: bool = False,
    ) -> "Container":
        """Copy this container into a folder.

        Args:
            destination: Folder to copy into
            *listeners: Listeners notified for this call only
            overwrite: Delete a same-named container at the destination first

        Returns:
            The new container in the destination

        Raises:
            OvercastAlreadyExistsError: If the name is taken and overwrite is False
            OvercastOperationError: If the provider fails
        """
        with self._lock:
            return OperationLifecycle.execute(
                self,
                Operation.COPY,
                destination=destination,
                overwrite=overwrite,
                listeners=listeners,
            )

    def move(
        self,
        destination: "Folder",
        *listeners: OperationListener,
        overwrite: bool = False,
    ) -> None:
        """Move this container into a folder."""
        with self._lock:
            OperationLifecycle.execute(
                self,
                Operation.MOVE,
                destination=destination,
                overwrite=overwrite,
                listeners=listeners,
            )

    def rename(self, new_name: str, *listeners: OperationListener) -> None:
        """Rename this container inside its parent."""
        with self._lock:
            OperationLifecycle.execute(
                self,
                Operation.RENAME,
                destination=self.parent,
                new_name=new_name,
                listeners=listeners,
            )

    def delete(self, *listeners: OperationListener) -> None:
        """Delete this container at the provider and drop it from the tree."""
        with self._lock:
            OperationLifecycle.execute(
                self,
                Operation.DELETE,
                destination=self.parent,
                listeners=listeners,
            )

    # =========================
    # Comparison
    # =========================

    @staticmethod
    def name_key(container: "Container") -> str:
        """Sort key ordering containers by name, case-insensitively."""
        return container.name.lower()

    @staticmethod
    def path_key(container: "Container") -> str:
        """Sort key ordering containers by path, case-insensitively."""
        return container.path.lower()

    @staticmethod
    def size_key(container: "Container") -> int:
        """Sort key ordering containers by size."""
        return container.size

    def child_key(self) -> str:
        """Key a folder stores this container under."""
        if self._id is None:
            return f"<unsaved:{id(self)}>"
        return self._id.lower()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Container):
            return NotImplemented
        if self._id is None or other._id is None:
            return self is other
        return self._id.lower() == other._id.lower()

    def __hash__(self) -> int:
        if self._id is None:
            return id(self)
        return hash(self._id.lower())

    def __lt__(self, other: "Container") -> bool:
        return self.path.lower() < other.path.lower()

    def __str__(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self._id!r}, path={self._path!r})"


class File(Container):
    """A file, local or remote."""

    is_folder = False


class Folder(Container):
    """A folder owning an insertion-ordered, duplicate-free set of children."""

    is_folder = True

    def __init__(
        self,
        csp: "ProviderContext",
        source: Any = None,
        name: str = "",
        path_prefix: Optional[str] = None,
    ):
        self._children: dict[str, Container] = {}
        self._children_lock = threading.RLock()
        super().__init__(csp, source=source, name=name, path_prefix=path_prefix)

    def _refresh_path(self) -> None:
        super()._refresh_path()
        # Descendant paths derive from ours
        for child in self.children:
            child._refresh_path()

    # =========================
    # Children
    # =========================

    @property
    def children(self) -> list[Container]:
        with self._children_lock:
            return list(self._children.values())

    @property
    def files(self) -> list[File]:
        return [c for c in self.children if not c.is_folder]  # type: ignore[misc]

    @property
    def folders(self) -> list["Folder"]:
        return [c for c in self.children if c.is_folder]  # type: ignore[misc]

    def add(self, container: Container) -> None:
        """Add a child, taking it away from its previous owning folder."""
        old_parent = container.parent
        if old_parent is not None and old_parent is not self:
            old_parent.remove(container)

        key = container.child_key()
        with self._children_lock:
            existing = self._children.get(key)
            self._children[key] = container
        if existing is not None and existing is not container:
            # The fresher object replaces a stale one with the same id
            existing._parent_ref = None
        container.parent = self

    def remove(self, container: Container) -> bool:
        """Remove a child. Returns False if it was not a child."""
        with self._children_lock:
            key = self._key_of(container)
            if key is None:
                return False
            removed = self._children.pop(key)
        if removed.parent is self:
            removed.parent = None
        return True

    def _key_of(self, container: Container) -> Optional[str]:
        key = container.child_key()
        if key in self._children:
            return key
        # Stored under an id the child no longer has
        for stored_key, child in self._children.items():
            if child is container:
                return stored_key
        return None

    def _rekey(self, container: Container, old_key: str) -> None:
        """Store a child under its new id, keeping its position."""
        new_key = container.child_key()
        with self._children_lock:
            if self._children.get(old_key) is not container:
                return
            stale = self._children.get(new_key)
            self._children = {
                (new_key if key == old_key else key): child
                for key, child in self._children.items()
                if key != new_key
            }
        if stale is not None and stale is not container:
            stale._parent_ref = None

    def get(self, child_id: str) -> Optional[Container]:
        """Return the child with the given id (case-insensitive)."""
        with self._children_lock:
            return self._children.get(child_id.lower())

    def remove_obsolete(self, keys) -> list[Container]:
        """Remove every child whose id is not among the given keys.

        Args:
            keys: Ids present in the provider's latest listing

        Returns:
            The removed children
        """
        current = {key.lower() for key in keys}
        obsolete = [
            child for child in self.children if child.child_key() not in current
        ]
        for child in obsolete:
            self.remove(child)
        return obsolete

    def search_by_name(
        self,
        name: str,
        recursive: bool = False,
        case_sensitive: bool = False,
        kind: Optional[EntryKind] = None,
    ) -> list[Container]:
        """Find children by exact name.

        Args:
            name: Name to look for
            recursive: Also search every known sub-folder
            case_sensitive: Compare names case-sensitively
            kind: Only return files or only folders

        Returns:
            Matching containers, direct children first
        """
        wanted = name if case_sensitive else name.lower()
        matches: list[Container] = []
        for child in self.children:
            child_name = child.name if case_sensitive else child.name.lower()
            if child_name != wanted:
                continue
            if kind is not None and child.is_folder != (kind == EntryKind.FOLDER):
                continue
            matches.append(child)

        if recursive:
            for folder in self.folders:
                matches.extend(
                    folder.search_by_name(
                        name, recursive=True, case_sensitive=case_sensitive, kind=kind
                    )
                )
        return matches

    def find(self, name: str, folder: Optional[bool] = None) -> Optional[Container]:
        """Return the first direct child with that name (and kind), or None."""
        kind = None
        if folder is not None:
            kind = EntryKind.FOLDER if folder else EntryKind.FILE
        matches = self.search_by_name(name, kind=kind)
        return matches[0] if matches else None

    def __iter__(self):
        return iter(self.children)

    def __len__(self) -> int:
        with self._children_lock:
            return len(self._children)

    def __contains__(self, container: object) -> bool:
        if not isinstance(container, Container):
            return False
        with self._children_lock:
            return container.child_key() in self._children

    # =========================
    # Provider-backed helpers
    # =========================

    def create(self, parent: "Folder") -> None:
        """Create this (placeholder) folder at the provider inside a parent.

        Raises:
            OvercastCreationError: If a folder with this name already exists or
                the provider rejects the creation
        """
        with self._lock:
            logger.info(f"{self.csp.name}: creating folder {self.name} in {parent.path}")
            if parent.find(self.name, folder=True) is not None:
                raise OvercastCreationError(
                    f"Couldn't create folder! Already exists: "
                    f"{join_path(parent.path, self.name)}"
                )
            try:
                handle = self.csp.provider.create_folder(parent.source, self.name)
            except OvercastCreationError:
                raise
            except OvercastError as e:
                raise OvercastCreationError(f"Couldn't create folder! {e}") from e

            self.source = handle
            parent.add(self)

    def create_folder(self, name: str) -> "Folder":
        """Create a sub-folder and return it."""
        folder = self.csp.factory.create_folder(name=name)
        folder.create(self)
        return folder

    def build_tree(self, depth: int = 0) -> None:
        """Populate or refresh this subtree down to the given depth."""
        self.csp.tree_builder.build_tree(self, depth)

    def calculate_size(self) -> int:
        """Sum of the sizes of all known files in this subtree."""
        return sum(f.size for f in self.files) + sum(
            folder.calculate_size() for folder in self.folders
        )
