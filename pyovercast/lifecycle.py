"""Operation lifecycle controller for copy, move, rename and delete.

Every operation goes through the same phases:

1. init: register the call's temporary listeners, work out the effective name
   and check the destination for a same-named container (deleting it when
   ``overwrite`` is set, failing otherwise);
2. process: ask the provider to do the work;
3. post: update the affected folders and notify COMPLETED;
4. failure: log, notify FAILED and re-raise as an operation failure;
5. cleanup: drop the temporary listeners, whatever happened.
"""

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from .exceptions import (
    OvercastAlreadyExistsError,
    OvercastError,
    OvercastOperationError,
)
from .operations import Operation, OperationListener, OperationState

if TYPE_CHECKING:
    from .container import Container, Folder

logger = logging.getLogger(__name__)


class OperationLifecycle:
    """Runs a container operation through init, process and post."""

    @classmethod
    def execute(
        cls,
        container: "Container",
        operation: Operation,
        destination: Optional["Folder"] = None,
        overwrite: bool = False,
        new_name: Optional[str] = None,
        listeners: Iterable[OperationListener] = (),
    ) -> Optional["Container"]:
        """Execute an operation on a container.

        Args:
            container: Container the operation is performed on
            operation: Operation to perform
            destination: Target folder for COPY and MOVE; the parent for
                RENAME and DELETE
            overwrite: Delete a same-named container at the destination first
            new_name: New name (RENAME only)
            listeners: Listeners notified for this call only

        Returns:
            The affected container: the copy for COPY, the container itself
            otherwise

        Raises:
            OvercastAlreadyExistsError: If the name is taken and overwrite is False
            OvercastOperationError: If any phase fails
        """
        listeners = tuple(listeners)
        container.add_temporary_listeners(operation, *listeners)
        try:
            cls._init(container, operation, destination, overwrite, new_name)
            affected = cls._process(container, operation, destination, new_name)
            cls._post(container, operation, destination, affected)
            return affected
        except Exception as e:
            cls._fail(container, operation, e)
        finally:
            container.listeners.remove_temporary_listeners(operation, *listeners)

    # =========================
    # Phases
    # =========================

    @classmethod
    def _init(
        cls,
        container: "Container",
        operation: Operation,
        destination: Optional["Folder"],
        overwrite: bool,
        new_name: Optional[str],
    ) -> None:
        if operation == Operation.DELETE:
            if container.parent is None:
                raise OvercastOperationError("Can't delete a root folder")
            return

        if operation == Operation.RENAME:
            if not new_name:
                raise OvercastOperationError("New name must not be empty")
            if container.parent is None:
                raise OvercastOperationError("Can't rename a root folder")
            # A rename never replaces its sibling
            overwrite = False
        elif destination is None:
            raise OvercastOperationError("No destination folder given")
        elif container.is_folder and cls._is_within(destination, container):
            raise OvercastOperationError(
                f"Can't {operation.value} {container.path} into itself"
            )

        name = new_name if operation == Operation.RENAME else container.name
        existing = cls._find_existing(container, destination, name)
        if existing is None:
            return

        if not overwrite:
            raise OvercastAlreadyExistsError(
                f"{existing.path} already exists at the destination"
            )

        logger.info(f"Overwriting {existing.path}")
        existing.delete()

    @staticmethod
    def _find_existing(
        container: "Container", destination: Optional["Folder"], name: str
    ) -> Optional["Container"]:
        if destination is None:
            return None
        for candidate in destination.children:
            if candidate is container or candidate == container:
                continue
            if candidate.is_folder != container.is_folder:
                continue
            if candidate.name.lower() == name.lower():
                return candidate
        return None

    @staticmethod
    def _is_within(folder: "Folder", ancestor: "Container") -> bool:
        current: Optional["Container"] = folder
        while current is not None:
            if current is ancestor:
                return True
            current = current.parent
        return False

    @staticmethod
    def _process(
        container: "Container",
        operation: Operation,
        destination: Optional["Folder"],
        new_name: Optional[str],
    ) -> "Container":
        provider = container.csp.provider
        logger.info(f"{operation} {container.path} ({container.csp.name})")

        if operation == Operation.COPY:
            assert destination is not None
            handle = provider.copy(container.source, destination.source)
            return container.csp.factory.create(
                handle, provider.describe(handle).kind
            )

        if operation == Operation.MOVE:
            assert destination is not None
            container.source = provider.move(container.source, destination.source)
            return container

        if operation == Operation.RENAME:
            assert new_name is not None
            container.source = provider.rename(container.source, new_name)
            return container

        provider.delete(container.source)
        return container

    @staticmethod
    def _post(
        container: "Container",
        operation: Operation,
        destination: Optional["Folder"],
        affected: "Container",
    ) -> None:
        if operation in (Operation.MOVE, Operation.DELETE):
            parent = container.parent
            if parent is not None:
                parent.remove(container)

        if operation in (Operation.COPY, Operation.MOVE):
            assert destination is not None
            destination.add(affected)

        if operation in (Operation.MOVE, Operation.RENAME) and container.is_folder:
            OperationLifecycle._refresh_descendants(container)

        logger.info(f"{operation} of {affected.path} finished")
        container.notify_listeners(
            operation, OperationState.COMPLETED, 1.0, affected=affected
        )

    @staticmethod
    def _refresh_descendants(folder: "Folder") -> None:
        """Rebuild a moved or renamed folder's known subtree.

        Descendant handles still point at the old location. Providers with
        stable ids keep the known containers; the others get fresh ones.
        """
        if not len(folder):
            return
        depth = OperationLifecycle._known_depth(folder)
        try:
            folder.build_tree(depth)
        except OvercastError as e:
            # The operation itself succeeded; only the stale subtree is dropped
            logger.warning(f"Couldn't refresh {folder.path} after the change: {e}")
            for child in folder.children:
                folder.remove(child)

    @staticmethod
    def _known_depth(folder: "Folder") -> int:
        depth = 0
        for sub_folder in folder.folders:
            if len(sub_folder):
                depth = max(depth, 1 + OperationLifecycle._known_depth(sub_folder))
        return depth

    @staticmethod
    def _fail(container: "Container", operation: Operation, cause: Exception):
        logger.error(f"{operation} of {container.path} failed: {cause}")
        container.notify_listeners(operation, OperationState.FAILED, 0.0)

        if isinstance(cause, OvercastAlreadyExistsError):
            raise cause
        raise OvercastOperationError(f"{operation} failed! {cause}") from cause
