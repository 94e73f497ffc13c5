"""CLI progress display for transfer jobs.

This module provides a Rich-based display that can be registered as the
progress listener of upload and download jobs.
"""

import threading
from typing import Optional

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .transfer import TransferEvent, TransferState


class TransferProgressDisplay:
    """Rich-based progress display with one bar per transfer job.

    The display is a transfer listener: pass it wherever a listener is
    accepted. Events arrive on the queue worker threads.
    """

    def __init__(self, transient: bool = False) -> None:
        """Initialize the progress display."""
        self.transient = transient
        self.completed = 0
        self.failed = 0
        self.cancelled = 0
        self._progress: Optional[Progress] = None
        self._tasks: dict[int, TaskID] = {}
        self._lock = threading.Lock()

    def __call__(self, event: TransferEvent) -> None:
        with self._lock:
            if event.state == TransferState.COMPLETED:
                self.completed += 1
            elif event.state == TransferState.FAILED:
                self.failed += 1
            elif event.state == TransferState.CANCELLED:
                self.cancelled += 1

            if self._progress is None:
                return

            job = event.job
            task = self._tasks.get(id(job))
            if task is None:
                task = self._progress.add_task(
                    f"{job.direction.value.capitalize()} {job.name}", total=1.0
                )
                self._tasks[id(job)] = task

            if event.state == TransferState.FAILED:
                description = f"[red]Failed {job.name}"
            elif event.state == TransferState.CANCELLED:
                description = f"[yellow]Cancelled {job.name}"
            elif event.state == TransferState.COMPLETED:
                description = f"[green]Done {job.name}"
            else:
                description = None

            if description is None:
                self._progress.update(task, completed=event.progress)
            else:
                self._progress.update(
                    task, completed=event.progress, description=description
                )

    @property
    def total(self) -> int:
        return self.completed + self.failed + self.cancelled

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            transient=self.transient,
            refresh_per_second=4,
        )
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        with self._lock:
            if self._progress is not None:
                self._progress.__exit__(exc_type, exc_val, exc_tb)
                self._progress = None
                self._tasks.clear()
