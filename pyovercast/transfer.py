"""Upload and download jobs.

A job is created for one file, waits in its provider's transfer queue and is
then driven by the provider through a :class:`TransferCallback`. States move
forward only::

    QUEUED -> INITIALISED -> IN_PROGRESS -> COMPLETED | FAILED | CANCELLED

Once a job reached a terminal state every later event is ignored; a job is
never reused.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

from .exceptions import OvercastTransferError

if TYPE_CHECKING:
    from .container import File, Folder
    from .provider import StorageProvider

logger = logging.getLogger(__name__)


class TransferState(str, Enum):
    """State of a transfer job."""

    QUEUED = "queued"
    INITIALISED = "initialised"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {TransferState.COMPLETED, TransferState.FAILED, TransferState.CANCELLED}
)


class TransferDirection(str, Enum):
    """Direction of a transfer, seen from the local machine."""

    UPLOAD = "upload"
    DOWNLOAD = "download"


@dataclass(frozen=True)
class TransferEvent:
    """Progress notification of a transfer job."""

    job: "TransferJob"
    state: TransferState
    progress: float
    message: Optional[str] = None


TransferListener = Callable[[TransferEvent], None]


class CancellationToken:
    """Cooperative cancellation flag shared with the provider."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class TransferCallback:
    """Callback surface a provider drives while transferring one job.

    Providers call these from the queue worker; they may also call them from
    their own threads.
    """

    def __init__(self, job: "TransferJob"):
        self.job = job

    def on_start(self) -> None:
        self.job._transition(TransferState.INITIALISED, 0.0)

    def on_progress(self, done: int, total: int) -> None:
        """Report bytes transferred so far."""
        progress = done / total if total > 0 else 0.0
        self.job._transition(TransferState.IN_PROGRESS, progress)

    def on_success(self, handle: Any = None) -> None:
        self.job.success(handle)

    def on_failure(self, reason: str) -> None:
        self.job._transition(TransferState.FAILED, None, reason)

    def on_cancel(self) -> None:
        self.job._transition(TransferState.CANCELLED, None, "Cancelled")

    def on_finish(self) -> None:
        logger.debug(f"Provider finished {self.job!r}")


class TransferJob:
    """Base class of upload and download jobs."""

    direction: TransferDirection

    def __init__(
        self,
        source: "File",
        destination: "File",
        parent: "Folder",
        overwrite: bool = False,
    ):
        """Initialize a job.

        Args:
            source: File being transferred
            destination: Placeholder of the file being produced
            parent: Folder the destination is added to on completion
            overwrite: Whether an existing destination file was replaced
        """
        self.source = source
        self.destination = destination
        self.parent = parent
        self.overwrite = overwrite

        self.state = TransferState.QUEUED
        self.progress = 0.0
        self.result: Any = None
        self.error: Optional[str] = None
        self.canceller = CancellationToken()
        self.callback = TransferCallback(self)
        self.progress_listeners: list[TransferListener] = []

        self._lock = threading.RLock()
        self._done = threading.Event()

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def is_done(self) -> bool:
        return self.state in TERMINAL_STATES

    # =========================
    # Listeners
    # =========================

    def add_progress_listener(self, listener: Optional[TransferListener]) -> None:
        if listener is None:
            return
        with self._lock:
            if listener not in self.progress_listeners:
                self.progress_listeners.append(listener)

    def remove_progress_listener(self, listener: TransferListener) -> None:
        with self._lock:
            if listener in self.progress_listeners:
                self.progress_listeners.remove(listener)

    def notify_progress_listeners(self, event: TransferEvent) -> None:
        for listener in list(self.progress_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Transfer listener {listener!r} failed: {e}")

    # =========================
    # State machine
    # =========================

    def _transition(
        self,
        state: TransferState,
        progress: Optional[float] = None,
        message: Optional[str] = None,
    ) -> bool:
        """Move to a new state. Returns False if the job was already done."""
        with self._lock:
            if self.is_done:
                logger.debug(
                    f"Ignoring {state.value} for finished {self!r} ({self.state.value})"
                )
                return False

            self.state = state
            if progress is not None:
                self.progress = max(0.0, min(1.0, progress))
            if state == TransferState.FAILED:
                self.error = message
                logger.error(f"{self.direction.value} of {self.name} failed: {message}")
            elif state == TransferState.CANCELLED:
                logger.info(f"{self.direction.value} of {self.name} cancelled")
            elif state == TransferState.COMPLETED:
                logger.info(f"{self.direction.value} of {self.name} completed")

            self.notify_progress_listeners(
                TransferEvent(job=self, state=state, progress=self.progress, message=message)
            )
            if state in TERMINAL_STATES:
                self._done.set()
            return True

    def success(self, handle: Any = None) -> None:
        """Complete the job with the handle the provider produced.

        Success after a cancellation request is reported as CANCELLED.
        """
        with self._lock:
            if self.is_done:
                return
            if self.canceller.cancelled:
                self._transition(TransferState.CANCELLED, None, "Cancelled")
                return
            try:
                self._complete(handle)
            except Exception as e:
                self._transition(TransferState.FAILED, None, str(e))
                return
            self._transition(TransferState.COMPLETED, 1.0)

    def fail(self, reason: str) -> None:
        self._transition(TransferState.FAILED, None, reason)

    def mark_cancelled(self, message: str = "Cancelled") -> None:
        self._transition(TransferState.CANCELLED, None, message)

    def request_cancel(self) -> None:
        """Ask the provider to stop; the state changes when it reacts."""
        self.canceller.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job is done. Returns False on timeout."""
        return self._done.wait(timeout)

    # =========================
    # Execution
    # =========================

    def run(self, provider: "StorageProvider") -> None:
        """Perform the transfer on the calling thread (the queue's worker).

        Provider exceptions propagate to the caller.
        """
        if self.is_done:
            return
        self.callback.on_start()
        handle = self._perform(provider)
        if self.is_done:
            return
        if self.canceller.cancelled:
            self.mark_cancelled()
        else:
            self.success(handle)

    def _perform(self, provider: "StorageProvider") -> Any:
        raise NotImplementedError

    def _complete(self, handle: Any) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.source.path!r} -> "
            f"{self.parent.path!r}, state={self.state.value})"
        )


class UploadJob(TransferJob):
    """Uploads a local file into a remote folder."""

    direction = TransferDirection.UPLOAD

    def _perform(self, provider: "StorageProvider") -> Any:
        return provider.upload(
            Path(self.source.source),
            self.parent.source,
            self.source.name,
            self.callback,
            self.canceller,
        )

    def _complete(self, handle: Any) -> None:
        if handle is None:
            raise OvercastTransferError(
                f"Upload of {self.name} finished without a remote entry"
            )
        self.result = handle
        self.destination.source = handle
        self.source.link_mapping(self.destination)
        self.parent.add(self.destination)


class DownloadJob(TransferJob):
    """Downloads a remote file into a local folder."""

    direction = TransferDirection.DOWNLOAD

    @property
    def target_path(self) -> Path:
        """Local file the download writes to."""
        return Path(self.parent.source) / self.source.name

    def _perform(self, provider: "StorageProvider") -> Any:
        return provider.download(
            self.source.source, self.target_path, self.callback, self.canceller
        )

    def _complete(self, handle: Any) -> None:
        self.result = Path(handle) if handle is not None else self.target_path
        self.destination.source = self.result
        self.source.link_mapping(self.destination)
        self.parent.add(self.destination)
