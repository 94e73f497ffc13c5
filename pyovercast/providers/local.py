"""Local filesystem provider."""

import logging
import shutil
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from ..exceptions import (
    OvercastAlreadyExistsError,
    OvercastAuthorisationError,
    OvercastCreationError,
    OvercastOperationError,
    OvercastTransferError,
)
from ..provider import EntryInfo, EntryKind, ListingPage, RawEntry
from ..transfer import CancellationToken, TransferCallback

logger = logging.getLogger(__name__)

# Chunk size for local copies (1 MB)
LOCAL_CHUNK_SIZE: int = 1024 * 1024


class LocalProvider:
    """Storage provider backed by a directory of the local filesystem.

    Handles are :class:`~pathlib.Path` objects and ids are their absolute POSIX
    paths, so the root directory is the provider's path prefix. The provider
    can also stand in for a remote backend (e.g. a mounted share).
    """

    supports_batch_metadata = True

    def __init__(
        self,
        root: Union[str, Path],
        name: str = "local",
        is_local: bool = True,
        chunk_size: int = LOCAL_CHUNK_SIZE,
    ):
        """Initialize the provider.

        Args:
            root: Directory acting as the provider root
            name: Display name
            is_local: False when the directory plays the remote side
            chunk_size: Bytes copied between progress reports
        """
        self.root_path = Path(root).expanduser().resolve()
        self.name = name
        self.is_local = is_local
        self.chunk_size = chunk_size
        self.path_prefix = self.root_path.as_posix()

    def authorise(self) -> None:
        if not self.root_path.is_dir():
            raise OvercastAuthorisationError(
                f"Local root {self.root_path} is not a directory"
            )

    def root(self) -> Path:
        return self.root_path

    def describe(self, handle: Any) -> EntryInfo:
        path = Path(handle)
        is_dir = path.is_dir()
        size = 0
        modified = None
        try:
            stat = path.stat()
            size = 0 if is_dir else stat.st_size
            modified = datetime.fromtimestamp(stat.st_mtime)
        except OSError as e:
            logger.debug(f"Can't stat {path}: {e}")

        return EntryInfo(
            id=path.as_posix(),
            name=path.name,
            kind=EntryKind.FOLDER if is_dir else EntryKind.FILE,
            size=size,
            modified=modified,
            path=path.as_posix(),
        )

    def list_children(
        self, folder_handle: Any, page_token: Optional[str] = None
    ) -> ListingPage:
        folder = Path(folder_handle)
        try:
            children = sorted(folder.iterdir(), key=lambda p: p.name.lower())
        except OSError as e:
            raise OvercastOperationError(f"Couldn't list {folder}: {e}") from e

        entries = []
        for child in children:
            if child.is_dir():
                kind = EntryKind.FOLDER
            elif child.is_file():
                kind = EntryKind.FILE
            else:
                logger.debug(f"Skipping {child} (neither file nor folder)")
                continue
            entries.append(RawEntry(key=child.as_posix(), kind=kind, metadata=child))
        return ListingPage(entries=entries)

    def fetch_metadata(self, handle: Any) -> Optional[Path]:
        path = Path(handle)
        return path if path.exists() else None

    def fetch_metadata_batch(self, keys: Iterable[str]) -> list[Path]:
        return [Path(key) for key in keys if Path(key).exists()]

    def create_folder(self, parent_handle: Any, name: str) -> Path:
        target = Path(parent_handle) / name
        try:
            target.mkdir()
        except FileExistsError as e:
            raise OvercastCreationError(f"{target} already exists") from e
        except OSError as e:
            raise OvercastCreationError(f"Couldn't create {target}: {e}") from e
        return target

    def copy(self, handle: Any, destination_handle: Any) -> Path:
        source = Path(handle)
        target = Path(destination_handle) / source.name
        try:
            if source.is_dir():
                shutil.copytree(source, target)
            else:
                shutil.copy2(source, target)
        except OSError as e:
            raise OvercastOperationError(f"Couldn't copy {source}: {e}") from e
        return target

    def move(self, handle: Any, destination_handle: Any) -> Path:
        source = Path(handle)
        target = Path(destination_handle) / source.name
        try:
            shutil.move(str(source), str(target))
        except OSError as e:
            raise OvercastOperationError(f"Couldn't move {source}: {e}") from e
        return target

    def rename(self, handle: Any, new_name: str) -> Path:
        source = Path(handle)
        target = source.with_name(new_name)
        # A case-only rename points at the same entry on case-insensitive systems
        if target.exists() and target.name.lower() != source.name.lower():
            raise OvercastAlreadyExistsError(f"{target} already exists")
        try:
            source.rename(target)
        except OSError as e:
            raise OvercastOperationError(f"Couldn't rename {source}: {e}") from e
        return target

    def delete(self, handle: Any) -> None:
        path = Path(handle)
        try:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            raise OvercastOperationError(f"Couldn't delete {path}: {e}") from e

    def upload(
        self,
        local_path: Path,
        parent_handle: Any,
        name: str,
        callback: TransferCallback,
        token: CancellationToken,
    ) -> Optional[Path]:
        return self._transfer(Path(local_path), Path(parent_handle) / name, callback, token)

    def download(
        self,
        handle: Any,
        local_path: Path,
        callback: TransferCallback,
        token: CancellationToken,
    ) -> Optional[Path]:
        return self._transfer(Path(handle), Path(local_path), callback, token)

    def _transfer(
        self,
        source: Path,
        target: Path,
        callback: TransferCallback,
        token: CancellationToken,
    ) -> Optional[Path]:
        """Copy a file in chunks, reporting progress and honouring cancellation."""
        if not source.is_file():
            raise OvercastTransferError(f"File not found: {source}")

        total = source.stat().st_size
        done = 0
        try:
            with open(source, "rb") as src, open(target, "wb") as dst:
                while not token.cancelled:
                    chunk = src.read(self.chunk_size)
                    if not chunk:
                        break
                    dst.write(chunk)
                    done += len(chunk)
                    callback.on_progress(done, total)
        except OSError as e:
            target.unlink(missing_ok=True)
            raise OvercastTransferError(f"Couldn't copy {source} to {target}: {e}") from e

        if token.cancelled:
            target.unlink(missing_ok=True)
            callback.on_cancel()
            callback.on_finish()
            return None

        shutil.copystat(source, target)
        callback.on_success(target)
        callback.on_finish()
        return target

    def free_space(self) -> int:
        return shutil.disk_usage(self.root_path).free

    def __repr__(self) -> str:
        return f"LocalProvider({self.root_path.as_posix()!r})"
