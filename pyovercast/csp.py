"""Provider context: everything the core keeps per storage provider.

A :class:`ProviderContext` is created once per backend and passed into every
container, factory, tree builder and transfer queue that belongs to it. It
authorises the provider on construction; an instance whose provider rejected
the credentials is never handed out.
"""

import logging
import threading
import time
from typing import TYPE_CHECKING, Optional

from .container import Container, File, Folder
from .exceptions import (
    OvercastAlreadyExistsError,
    OvercastAuthorisationError,
    OvercastError,
    OvercastOperationError,
)
from .factory import ContainerFactory
from .scheduler import TransferQueue
from .transfer import (
    DownloadJob,
    TransferDirection,
    TransferJob,
    TransferListener,
    UploadJob,
)
from .tree import UNLIMITED_DEPTH, TreeBuilder

if TYPE_CHECKING:
    from .provider import StorageProvider

logger = logging.getLogger(__name__)


class ProviderContext:
    """Factory, queues and tree of one storage provider."""

    def __init__(
        self,
        provider: "StorageProvider",
        name: Optional[str] = None,
        authorise: bool = True,
    ):
        """Initialize the context and authorise the provider.

        Args:
            provider: Storage backend
            name: Display name (defaults to the provider's name)
            authorise: Verify credentials now

        Raises:
            OvercastAuthorisationError: If the provider rejects the credentials
        """
        self.provider = provider
        self.name = name or provider.name

        if authorise:
            logger.debug(f"Authorising {self.name}")
            try:
                provider.authorise()
            except OvercastAuthorisationError:
                raise
            except OvercastError as e:
                raise OvercastAuthorisationError(
                    f"Couldn't authorise {self.name}! {e}"
                ) from e

        self.factory = ContainerFactory(self)
        self.tree_builder = TreeBuilder(self)
        self.upload_queue = TransferQueue(
            provider, TransferDirection.UPLOAD, f"{self.name}-upload"
        )
        self.download_queue = TransferQueue(
            provider, TransferDirection.DOWNLOAD, f"{self.name}-download"
        )
        self.full_tree_loaded = False

        self._root: Optional[Folder] = None
        self._lock = threading.RLock()

    @property
    def is_local(self) -> bool:
        return self.provider.is_local

    # =========================
    # Tree
    # =========================

    @property
    def root(self) -> Folder:
        """Root folder, created on first access."""
        with self._lock:
            if self._root is None:
                self.init_tree()
            assert self._root is not None
            return self._root

    def init_tree(self) -> Folder:
        """(Re)create the root folder without any children.

        The previous tree is detached: its top-level containers lose their
        parent, so containers still held by callers no longer resolve paths
        or ancestors through the old root. Build the new tree to get fresh
        containers.
        """
        with self._lock:
            try:
                handle = self.provider.root()
            except OvercastError as e:
                raise OvercastOperationError(
                    f"Couldn't access the root of {self.name}! {e}"
                ) from e
            old_root = self._root
            if old_root is not None:
                for child in old_root.children:
                    old_root.remove(child)
            self._root = self.factory.create_folder(handle)
            self.full_tree_loaded = False
            logger.debug(f"{self.name}: root is {self._root!r}")
            return self._root

    def build_file_tree(self, depth: int = UNLIMITED_DEPTH) -> Folder:
        """Build (or refresh) the tree below the root.

        Args:
            depth: Levels to descend; UNLIMITED_DEPTH loads everything

        Returns:
            The root folder
        """
        root = self.root
        logger.info(f"{self.name}: building file tree")
        self.tree_builder.build_tree(root, depth)
        if depth == UNLIMITED_DEPTH:
            self.full_tree_loaded = True
        return root

    def resolve_path(self, path: str, build: bool = True) -> Optional[Container]:
        """Find the container at a logical path.

        Args:
            path: Path starting at the provider root, e.g. "/Docs/report.pdf"
            build: Load each folder's children while walking down, unless the
                full tree is already loaded

        Returns:
            The container, or None if nothing exists at that path
        """
        current: Container = self.root
        for part in [p for p in path.strip("/").split("/") if p]:
            if not isinstance(current, Folder):
                return None
            if build and not self.full_tree_loaded:
                self.tree_builder.build_tree(current, 0)
            matches = current.search_by_name(part, case_sensitive=True)
            if not matches:
                matches = current.search_by_name(part)
            if not matches:
                return None
            current = matches[0]
        return current

    # =========================
    # Transfers
    # =========================

    def upload(
        self,
        local_file: File,
        remote_parent: Folder,
        overwrite: bool = False,
        listener: Optional[TransferListener] = None,
    ) -> UploadJob:
        """Queue the upload of one local file into a folder of this provider.

        Raises:
            OvercastAlreadyExistsError: If the folder already holds a file of
                that name and overwrite is False
        """
        self._prepare_destination(remote_parent, local_file.name, overwrite)
        destination = self.factory.create_file(name=local_file.name)
        job = UploadJob(local_file, destination, remote_parent, overwrite)
        job.add_progress_listener(listener)
        logger.info(f"Queueing upload of {local_file.path} to {remote_parent.path}")
        self.upload_queue.enqueue(job)
        return job

    def download(
        self,
        remote_file: File,
        local_parent: Folder,
        overwrite: bool = False,
        listener: Optional[TransferListener] = None,
    ) -> DownloadJob:
        """Queue the download of one file of this provider into a local folder.

        Raises:
            OvercastAlreadyExistsError: If the local folder already holds a file
                of that name and overwrite is False
        """
        self._prepare_destination(local_parent, remote_file.name, overwrite)
        destination = local_parent.csp.factory.create_file(name=remote_file.name)
        job = DownloadJob(remote_file, destination, local_parent, overwrite)
        job.add_progress_listener(listener)
        logger.info(f"Queueing download of {remote_file.path} to {local_parent.path}")
        self.download_queue.enqueue(job)
        return job

    def upload_folder(
        self,
        local_folder: Folder,
        remote_parent: Folder,
        overwrite: bool = False,
        listener: Optional[TransferListener] = None,
        build_source: bool = True,
    ) -> list[TransferJob]:
        """Queue the upload of a whole local subtree.

        Returns:
            Every job created, in the order it was queued
        """
        if build_source:
            local_folder.build_tree(UNLIMITED_DEPTH)
        jobs: list[TransferJob] = []
        self._upload_folder(local_folder, remote_parent, overwrite, listener, jobs)
        return jobs

    def _upload_folder(
        self,
        local_folder: Folder,
        remote_parent: Folder,
        overwrite: bool,
        listener: Optional[TransferListener],
        jobs: list[TransferJob],
    ) -> None:
        remote_folder = self._ensure_folder(remote_parent, local_folder.name)
        local_folder.link_mapping(remote_folder)
        for local_file in local_folder.files:
            jobs.append(self.upload(local_file, remote_folder, overwrite, listener))
        for sub_folder in local_folder.folders:
            self._upload_folder(sub_folder, remote_folder, overwrite, listener, jobs)

    def download_folder(
        self,
        remote_folder: Folder,
        local_parent: Folder,
        overwrite: bool = False,
        listener: Optional[TransferListener] = None,
        build_source: bool = True,
    ) -> list[TransferJob]:
        """Queue the download of a whole subtree of this provider.

        Returns:
            Every job created, in the order it was queued
        """
        if build_source:
            remote_folder.build_tree(UNLIMITED_DEPTH)
        jobs: list[TransferJob] = []
        self._download_folder(remote_folder, local_parent, overwrite, listener, jobs)
        return jobs

    def _download_folder(
        self,
        remote_folder: Folder,
        local_parent: Folder,
        overwrite: bool,
        listener: Optional[TransferListener],
        jobs: list[TransferJob],
    ) -> None:
        local_folder = self._ensure_folder(local_parent, remote_folder.name)
        remote_folder.link_mapping(local_folder)
        for remote_file in remote_folder.files:
            jobs.append(self.download(remote_file, local_folder, overwrite, listener))
        for sub_folder in remote_folder.folders:
            self._download_folder(sub_folder, local_folder, overwrite, listener, jobs)

    def enqueue_upload(
        self,
        container: Container,
        remote_parent: Folder,
        overwrite: bool = False,
        listener: Optional[TransferListener] = None,
    ) -> list[TransferJob]:
        """Queue the upload of a local file or a whole local folder."""
        if isinstance(container, Folder):
            return self.upload_folder(container, remote_parent, overwrite, listener)
        return [self.upload(container, remote_parent, overwrite, listener)]

    def enqueue_download(
        self,
        container: Container,
        local_parent: Folder,
        overwrite: bool = False,
        listener: Optional[TransferListener] = None,
    ) -> list[TransferJob]:
        """Queue the download of a remote file or a whole remote folder."""
        if isinstance(container, Folder):
            return self.download_folder(container, local_parent, overwrite, listener)
        return [self.download(container, local_parent, overwrite, listener)]

    def cancel_transfer(self, job: TransferJob) -> bool:
        """Cancel a queued or running job of this provider."""
        if job.direction == TransferDirection.UPLOAD:
            return self.upload_queue.cancel(job)
        return self.download_queue.cancel(job)

    def wait_for_transfers(self, timeout: Optional[float] = None) -> bool:
        """Block until both queues are idle. Returns False on timeout.

        The timeout bounds the whole wait, not each queue.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        uploads_done = self.upload_queue.wait_until_idle(timeout)
        remaining = None
        if deadline is not None:
            remaining = max(0.0, deadline - time.monotonic())
        downloads_done = self.download_queue.wait_until_idle(remaining)
        return uploads_done and downloads_done

    @staticmethod
    def _prepare_destination(parent: Folder, name: str, overwrite: bool) -> None:
        existing = parent.find(name, folder=False)
        if existing is None:
            return
        if not overwrite:
            raise OvercastAlreadyExistsError(f"{existing.path} already exists")
        logger.info(f"Replacing {existing.path}")
        existing.delete()

    @staticmethod
    def _ensure_folder(parent: Folder, name: str) -> Folder:
        existing = parent.find(name, folder=True)
        if isinstance(existing, Folder):
            # Reused folders need their children to detect existing files
            existing.build_tree(0)
            return existing
        return parent.create_folder(name)

    # =========================
    # Misc
    # =========================

    def calculate_remote_free_space(self) -> int:
        """Remaining space at the provider, in bytes."""
        try:
            return self.provider.free_space()
        except OvercastError as e:
            raise OvercastOperationError(
                f"Couldn't determine free space of {self.name}! {e}"
            ) from e

    def close(self) -> None:
        """Stop both transfer queues."""
        self.upload_queue.shutdown()
        self.download_queue.shutdown()

    def __enter__(self) -> "ProviderContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ProviderContext({self.name!r})"
