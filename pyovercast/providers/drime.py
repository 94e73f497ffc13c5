"""Drime Cloud provider."""

import logging
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from ..api import DrimeClient
from ..exceptions import (
    DrimeAPIError,
    DrimeAuthenticationError,
    DrimeCancelledError,
    DrimeNotFoundError,
    OvercastAccessError,
    OvercastAuthorisationError,
    OvercastCreationError,
    OvercastOperationError,
    OvercastTransferError,
)
from ..models import FileEntriesResult, FileEntry
from ..provider import EntryInfo, EntryKind, ListingPage, RawEntry
from ..transfer import CancellationToken, TransferCallback
from ..utils import DEFAULT_PER_PAGE

logger = logging.getLogger(__name__)

# Drime has no entry for the root folder; id 0 stands for it
ROOT_ID = 0


class DrimeProvider:
    """Storage provider backed by a Drime Cloud workspace.

    Handles are :class:`~pyovercast.models.FileEntry` objects, listing page
    tokens are page numbers and ids are the numeric entry ids.
    """

    is_local = False
    path_prefix = ""
    supports_batch_metadata = False

    def __init__(
        self,
        client: DrimeClient,
        workspace_id: int = 0,
        delete_forever: bool = False,
        name: str = "drime",
        per_page: int = DEFAULT_PER_PAGE,
    ):
        """Initialize the provider.

        Args:
            client: Drime API client
            workspace_id: Workspace to operate in (default: 0 for personal)
            delete_forever: Delete permanently instead of moving to the trash
            name: Display name
            per_page: Entries requested per listing page
        """
        self.client = client
        self.workspace_id = workspace_id
        self.delete_forever = delete_forever
        self.name = name
        self.per_page = per_page
        self._root = FileEntry(
            id=ROOT_ID, name="", type="folder", workspace_id=workspace_id
        )

    @staticmethod
    def _folder_id(handle: FileEntry) -> Optional[int]:
        return None if handle.id == ROOT_ID else handle.id

    def authorise(self) -> None:
        try:
            user_info = self.client.get_logged_user()
        except DrimeAuthenticationError as e:
            raise OvercastAuthorisationError(f"Invalid API key: {e}") from e
        except DrimeAPIError as e:
            raise OvercastAuthorisationError(f"Couldn't verify API key: {e}") from e

        # A rejected key yields a null user
        if not user_info or not user_info.get("user"):
            raise OvercastAuthorisationError("Invalid API key")
        logger.debug(f"Logged in as {user_info['user'].get('email', '?')}")

    def root(self) -> FileEntry:
        return self._root

    def describe(self, handle: FileEntry) -> EntryInfo:
        return EntryInfo(
            id=str(handle.id),
            name=handle.name,
            kind=EntryKind.FOLDER if handle.is_folder else EntryKind.FILE,
            size=handle.file_size,
            modified=handle.modified,
        )

    def list_children(
        self, folder_handle: FileEntry, page_token: Optional[str] = None
    ) -> ListingPage:
        page = int(page_token) if page_token else 1
        folder_id = self._folder_id(folder_handle)
        try:
            response = self.client.get_file_entries(
                parent_ids=[folder_id] if folder_id is not None else None,
                workspace_id=self.workspace_id,
                per_page=self.per_page,
                page=page,
            )
        except DrimeAPIError as e:
            raise OvercastOperationError(
                f"Couldn't list folder {folder_handle.name or '/'}: {e}"
            ) from e

        result = FileEntriesResult.from_api_response(response)
        entries = [
            RawEntry(
                key=str(entry.id),
                kind=EntryKind.FOLDER if entry.is_folder else EntryKind.FILE,
                metadata=entry,
            )
            for entry in result.entries
        ]
        return ListingPage(
            entries=entries,
            next_page_token=str(page + 1) if result.has_more else None,
        )

    def fetch_metadata(self, handle: Any) -> Optional[FileEntry]:
        entry_id = handle.id if isinstance(handle, FileEntry) else int(handle)
        if entry_id == ROOT_ID:
            return self._root
        try:
            response = self.client.get_file_entry(entry_id, self.workspace_id)
        except DrimeNotFoundError:
            return None
        except DrimeAPIError as e:
            raise OvercastAccessError(f"Couldn't fetch entry {entry_id}: {e}") from e

        data = response.get("fileEntry", response) if response else None
        if not data or "id" not in data:
            return None
        return FileEntry.from_dict(data)

    def fetch_metadata_batch(self, keys: Iterable[str]) -> list[FileEntry]:
        entries = []
        for key in keys:
            entry = self.fetch_metadata(key)
            if entry is not None:
                entries.append(entry)
        return entries

    def create_folder(self, parent_handle: FileEntry, name: str) -> FileEntry:
        try:
            response = self.client.create_folder(name, self._folder_id(parent_handle))
        except DrimeAPIError as e:
            raise OvercastCreationError(f"Couldn't create folder {name}: {e}") from e

        folder = response.get("folder")
        if not folder:
            raise OvercastCreationError(f"Couldn't create folder {name}: {response}")
        return FileEntry.from_dict(folder)

    def copy(self, handle: FileEntry, destination_handle: FileEntry) -> FileEntry:
        try:
            response = self.client.duplicate_file_entries(
                [handle.id], self._folder_id(destination_handle)
            )
        except DrimeAPIError as e:
            raise OvercastOperationError(f"Couldn't copy {handle.name}: {e}") from e

        entries = response.get("entries") or []
        if not entries:
            raise OvercastOperationError(f"Copy of {handle.name} returned no entry")
        return FileEntry.from_dict(entries[0])

    def move(self, handle: FileEntry, destination_handle: FileEntry) -> FileEntry:
        destination_id = self._folder_id(destination_handle)
        try:
            response = self.client.move_file_entries([handle.id], destination_id)
        except DrimeAPIError as e:
            raise OvercastOperationError(f"Couldn't move {handle.name}: {e}") from e

        entries = response.get("entries") or []
        if entries:
            return FileEntry.from_dict(entries[0])
        return replace(handle, parent_id=destination_id)

    def rename(self, handle: FileEntry, new_name: str) -> FileEntry:
        try:
            response = self.client.update_file_entry(handle.id, name=new_name)
        except DrimeAPIError as e:
            raise OvercastOperationError(f"Couldn't rename {handle.name}: {e}") from e

        data = response.get("fileEntry")
        if data:
            return FileEntry.from_dict(data)
        return replace(handle, name=new_name)

    def delete(self, handle: FileEntry) -> None:
        try:
            self.client.delete_file_entries(
                [handle.id],
                delete_forever=self.delete_forever,
                workspace_id=self.workspace_id,
            )
        except DrimeAPIError as e:
            raise OvercastOperationError(f"Couldn't delete {handle.name}: {e}") from e

    def upload(
        self,
        local_path: Path,
        parent_handle: FileEntry,
        name: str,
        callback: TransferCallback,
        token: CancellationToken,
    ) -> Optional[FileEntry]:
        if name != local_path.name:
            logger.debug(f"Uploading {local_path} keeps its own name, not {name}")
        try:
            result = self.client.upload_file(
                local_path,
                parent_id=self._folder_id(parent_handle),
                workspace_id=self.workspace_id,
                progress_callback=callback.on_progress,
                should_cancel=lambda: token.cancelled,
            )
        except DrimeCancelledError:
            callback.on_cancel()
            callback.on_finish()
            return None
        except DrimeAPIError as e:
            raise OvercastTransferError(f"Upload of {name} failed: {e}") from e

        data = result.get("fileEntry") if result else None
        if not data:
            raise OvercastTransferError(f"Upload of {name} returned no file entry")
        entry = FileEntry.from_dict(data)
        callback.on_success(entry)
        callback.on_finish()
        return entry

    def download(
        self,
        handle: FileEntry,
        local_path: Path,
        callback: TransferCallback,
        token: CancellationToken,
    ) -> Optional[Path]:
        local_path = Path(local_path)
        try:
            self.client.download_file(
                handle.hash,
                local_path,
                progress_callback=callback.on_progress,
                should_cancel=lambda: token.cancelled,
            )
        except DrimeCancelledError:
            local_path.unlink(missing_ok=True)
            callback.on_cancel()
            callback.on_finish()
            return None
        except DrimeAPIError as e:
            local_path.unlink(missing_ok=True)
            raise OvercastTransferError(f"Download of {handle.name} failed: {e}") from e

        callback.on_success(local_path)
        callback.on_finish()
        return local_path

    def free_space(self) -> int:
        try:
            usage = self.client.get_space_usage()
        except DrimeAPIError as e:
            raise OvercastOperationError(f"Couldn't query space usage: {e}") from e
        return int(usage.get("available", 0) or 0)

    def __repr__(self) -> str:
        return f"DrimeProvider(workspace_id={self.workspace_id})"
