"""Recursive tree builder.

Brings a folder's known children in line with the provider's listing:
children that disappeared are removed, new ones are created through the
factory, and known children are kept as they are so that their listeners and
mappings survive a refresh.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

from .container import Container, Folder
from .exceptions import OvercastError, OvercastOperationError
from .provider import RawEntry

if TYPE_CHECKING:
    from .csp import ProviderContext

logger = logging.getLogger(__name__)

# Depth that builds the complete tree
UNLIMITED_DEPTH: int = sys.maxsize


class TreeBuilder:
    """Builds and refreshes container trees of one provider context."""

    def __init__(self, csp: "ProviderContext"):
        self.csp = csp

    @property
    def provider(self):
        return self.csp.provider

    def build_tree(self, folder: Folder, depth: int) -> None:
        """Populate or refresh a folder's subtree.

        Args:
            folder: Folder to refresh
            depth: Levels below ``folder`` to descend into; 0 refreshes only
                the folder's own children, a negative depth does nothing

        Raises:
            OvercastOperationError: If the provider fails
        """
        if depth < 0:
            return

        try:
            listing = self._list_all(folder)

            removed = folder.remove_obsolete(listing.keys())
            for child in removed:
                logger.debug(f"{self.csp.name}: {child.path} is gone")

            new_entries = [
                entry for key, entry in listing.items() if folder.get(key) is None
            ]
            for container in self._create_containers(new_entries):
                folder.add(container)
        except OvercastOperationError:
            raise
        except OvercastError as e:
            raise OvercastOperationError(f"Failed to build tree! {e}") from e

        logger.debug(
            f"{self.csp.name}: {folder.path} has {len(folder)} children "
            f"({len(new_entries)} new, {len(removed)} removed)"
        )

        for sub_folder in folder.folders:
            self.build_tree(sub_folder, depth - 1)

    def _list_all(self, folder: Folder) -> dict[str, RawEntry]:
        """Fetch every page of a listing, keyed by lowercased entry key."""
        entries: dict[str, RawEntry] = {}
        page_token = None
        while True:
            page = self.provider.list_children(folder.source, page_token)
            for entry in page.entries:
                # The first occurrence wins when pages overlap
                entries.setdefault(entry.key.lower(), entry)
            page_token = page.next_page_token
            if not page_token:
                return entries

    def _create_containers(self, entries: list[RawEntry]) -> list[Container]:
        missing = [entry.key for entry in entries if entry.metadata is None]
        resolved: dict[str, Any] = {}
        if missing:
            for handle in self._fetch_metadata(missing):
                resolved[self.provider.describe(handle).id.lower()] = handle

        containers = []
        for entry in entries:
            if entry.metadata is not None:
                containers.append(self.csp.factory.create_from_entry(entry))
                continue
            handle = resolved.get(entry.key.lower())
            if handle is None:
                logger.warning(
                    f"{self.csp.name}: no metadata for {entry.key}, skipping it"
                )
                continue
            containers.append(self.csp.factory.create(handle, entry.kind))
        return containers

    def _fetch_metadata(self, keys: list[str]) -> list[Any]:
        if self.provider.supports_batch_metadata:
            return list(self.provider.fetch_metadata_batch(keys))

        handles = []
        for key in keys:
            handle = self.provider.fetch_metadata(key)
            if handle is not None:
                handles.append(handle)
        return handles
