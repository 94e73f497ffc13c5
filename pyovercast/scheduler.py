"""Single-flight FIFO transfer queue.

Each provider context owns one queue per direction. At most one job of a
queue runs at a time, on the queue's own worker thread; when it reaches a
terminal state the next queued job is started automatically.
"""

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Optional

from .exceptions import OvercastTransferError
from .transfer import TransferDirection, TransferJob

if TYPE_CHECKING:
    from .provider import StorageProvider

logger = logging.getLogger(__name__)


class TransferQueue:
    """FIFO queue running one transfer job at a time."""

    def __init__(
        self,
        provider: "StorageProvider",
        direction: TransferDirection,
        name: Optional[str] = None,
    ):
        """Initialize a queue.

        Args:
            provider: Provider the jobs are handed to
            direction: Direction of every job in this queue
            name: Name used for the worker thread and in log messages
        """
        self.provider = provider
        self.direction = direction
        self.name = name or f"{provider.name}-{direction.value}"

        self._pending: deque[TransferJob] = deque()
        self._current: Optional[TransferJob] = None
        self._closed = False
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=self.name
        )

    @property
    def current_job(self) -> Optional[TransferJob]:
        with self._lock:
            return self._current

    @property
    def pending_jobs(self) -> list[TransferJob]:
        with self._lock:
            return list(self._pending)

    @property
    def is_idle(self) -> bool:
        with self._lock:
            return self._current is None and not self._pending

    def enqueue(self, job: TransferJob) -> None:
        """Append a job and start it if the queue is idle."""
        if job.direction != self.direction:
            raise ValueError(
                f"Can't queue a {job.direction.value} job on {self.name}"
            )
        with self._lock:
            if self._closed:
                raise OvercastTransferError(f"Transfer queue {self.name} is shut down")
            self._pending.append(job)
            logger.debug(f"{self.name}: queued {job!r} ({len(self._pending)} waiting)")
        self.advance()

    def advance(self) -> None:
        """Start the next queued job unless one is already running."""
        with self._lock:
            if self._current is not None:
                return

            job = None
            while self._pending and not self._closed:
                candidate = self._pending.popleft()
                if not candidate.is_done:
                    job = candidate
                    break

            if job is None:
                self._idle.notify_all()
                return

            self._current = job
            logger.debug(f"{self.name}: starting {job!r}")
            self._executor.submit(self._run, job)

    def _run(self, job: TransferJob) -> None:
        try:
            job.run(self.provider)
        except Exception as e:
            job.fail(str(e))
        finally:
            with self._lock:
                if self._current is job:
                    self._current = None
            self.advance()

    def cancel(self, job: TransferJob) -> bool:
        """Cancel a job of this queue.

        A queued job is removed and marked CANCELLED without reaching the
        provider. The running job is asked to stop; its state changes when
        the provider reacts.

        Returns:
            False if the job is neither queued nor running here
        """
        with self._lock:
            if job is self._current:
                logger.info(f"{self.name}: cancelling running {job!r}")
                job.request_cancel()
                return True
            if job not in self._pending:
                return False
            self._pending.remove(job)
            if self._current is None and not self._pending:
                self._idle.notify_all()

        logger.info(f"{self.name}: removed queued {job!r}")
        job.request_cancel()
        job.mark_cancelled("Cancelled before start")
        return True

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is queued or running. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(
                lambda: self._current is None and not self._pending, timeout
            )

    def shutdown(self, wait: bool = True) -> None:
        """Cancel every queued job, ask the running one to stop and stop the worker."""
        with self._lock:
            self._closed = True
            pending = list(self._pending)
            self._pending.clear()
            current = self._current

        for job in pending:
            job.request_cancel()
            job.mark_cancelled("Transfer queue shut down")
        if current is not None:
            current.request_cancel()
        with self._lock:
            self._idle.notify_all()
        self._executor.shutdown(wait=wait)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending) + (1 if self._current is not None else 0)
