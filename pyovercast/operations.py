"""Operation kinds, operation events and the per-container listener registry.

Every container owns a :class:`ListenerRegistry` holding two maps from a
listener to the set of operations it watches:

* the durable registry, filled by :meth:`ListenerRegistry.add_listener`;
* the temporary registry, filled for the duration of one lifecycle call with
  the listeners passed to that call.

A listener that is registered in both for the same operation is notified
once per event, through its durable registration.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Operations a container goes through the lifecycle controller for."""

    COPY = "copy"
    MOVE = "move"
    RENAME = "rename"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.name


class OperationState(str, Enum):
    """State reported to operation listeners."""

    INITIALISED = "initialised"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class OperationEvent:
    """A single notification delivered to operation listeners."""

    container: "Container"
    """Container the operation was performed on"""

    operation: Operation
    """Operation that changed state"""

    state: OperationState
    """New state of the operation"""

    progress: float
    """Progress between 0.0 and 1.0"""

    affected: Optional["Container"] = None
    """Container produced or changed by the operation (e.g. the copy)"""


OperationListener = Callable[[OperationEvent], None]


class ListenerRegistry:
    """Durable and temporary operation listeners of one container.

    All methods are safe to call from several threads; the transfer worker
    and the caller's thread may touch the same registry.
    """

    def __init__(self) -> None:
        self._durable: dict[OperationListener, set[Operation]] = {}
        self._temporary: dict[OperationListener, set[Operation]] = {}
        self._lock = threading.RLock()

    def add_listener(self, listener: OperationListener, operation: Operation) -> None:
        """Register durable interest of a listener in an operation.

        A temporary registration for the same operation is promoted, i.e.
        removed from the temporary registry.
        """
        with self._lock:
            self._durable.setdefault(listener, set()).add(operation)
            if operation in self._temporary.get(listener, ()):
                self._discard(self._temporary, listener, operation)

    def add_temporary_listeners(
        self, operation: Operation, *listeners: OperationListener
    ) -> None:
        """Register call-scoped interest for listeners not already durable."""
        with self._lock:
            for listener in listeners:
                if listener is None:
                    continue
                if operation in self._durable.get(listener, ()):
                    continue
                self._temporary.setdefault(listener, set()).add(operation)

    def remove_listener(
        self, listener: OperationListener, operation: Optional[Operation] = None
    ) -> None:
        """Remove one durable interest, or every interest of the listener.

        Args:
            listener: Listener to remove
            operation: Operation to stop watching; None removes the listener
                entirely
        """
        with self._lock:
            if operation is None:
                self._durable.pop(listener, None)
            else:
                self._discard(self._durable, listener, operation)

    def remove_temporary_listeners(
        self, operation: Operation, *listeners: OperationListener
    ) -> None:
        """Drop the temporary interest of listeners in an operation."""
        with self._lock:
            for listener in listeners:
                if listener is not None:
                    self._discard(self._temporary, listener, operation)

    def clear_listeners(self, operation: Optional[Operation] = None) -> None:
        """Remove durable listeners for one operation, or all of them."""
        with self._lock:
            if operation is None:
                self._durable.clear()
                return
            for listener in list(self._durable):
                self._discard(self._durable, listener, operation)

    def has_listener(
        self,
        listener: OperationListener,
        operation: Optional[Operation] = None,
        temporary: bool = False,
    ) -> bool:
        """Check whether a listener is registered (for an operation)."""
        registry = self._temporary if temporary else self._durable
        with self._lock:
            if listener not in registry:
                return False
            return operation is None or operation in registry[listener]

    def listeners_for(self, operation: Operation) -> list[OperationListener]:
        """Return every listener that should receive an event for an operation.

        Durable listeners come first; temporary listeners are only included
        when they are not also durably watching the operation.
        """
        with self._lock:
            durable = [
                listener
                for listener, operations in self._durable.items()
                if operation in operations
            ]
            temporary = [
                listener
                for listener, operations in self._temporary.items()
                if operation in operations
                and operation not in self._durable.get(listener, ())
            ]
        return durable + temporary

    def notify(self, event: OperationEvent) -> int:
        """Deliver an event to every interested listener.

        Delivery order across listeners is unspecified. Every listener has
        been called when this method returns; a failing listener is logged
        and does not stop delivery to the others.

        Returns:
            Number of listeners the event was delivered to
        """
        listeners = self.listeners_for(event.operation)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    f"Operation listener {listener!r} failed on "
                    f"{event.operation} ({event.state.value}): {e}"
                )
        return len(listeners)

    def __len__(self) -> int:
        with self._lock:
            return len(self._durable)

    @staticmethod
    def _discard(
        registry: dict[OperationListener, set[Operation]],
        listener: OperationListener,
        operation: Operation,
    ) -> None:
        operations = registry.get(listener)
        if operations is None:
            return
        operations.discard(operation)
        if not operations:
            del registry[listener]
