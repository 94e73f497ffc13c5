"""Shared fixtures: an in-memory storage provider and provider contexts."""

import itertools
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import pytest

from pyovercast.csp import ProviderContext
from pyovercast.exceptions import OvercastAuthorisationError
from pyovercast.provider import EntryInfo, EntryKind, ListingPage, RawEntry
from pyovercast.providers.local import LocalProvider


@dataclass
class FakeNode:
    """An entry of the in-memory provider; also serves as its handle."""

    id: str
    name: str
    is_folder: bool
    parent_id: Optional[str]
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)


class FakeProvider:
    """In-memory provider recording every call.

    ``gates`` maps a file name to an event a transfer of that file waits for,
    which lets tests hold a job in flight. ``fail_on`` maps a method name to
    the exception it raises.
    """

    is_local = False
    path_prefix = ""

    def __init__(
        self,
        name: str = "fake",
        page_size: Optional[int] = None,
        supports_batch_metadata: bool = False,
        listing_metadata: bool = True,
    ):
        self.name = name
        self.page_size = page_size
        self.supports_batch_metadata = supports_batch_metadata
        self.listing_metadata = listing_metadata
        self.reject_auth = False
        self.nodes: dict[str, FakeNode] = {
            "root": FakeNode(id="root", name="", is_folder=True, parent_id=None)
        }
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self.gates: dict[str, threading.Event] = {}
        self.started = threading.Event()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # Test helpers

    def add(
        self, parent_id: str, name: str, folder: bool = False, data: bytes = b""
    ) -> FakeNode:
        with self._lock:
            node_id = f"n{next(self._ids)}"
        node = FakeNode(
            id=node_id, name=name, is_folder=folder, parent_id=parent_id, data=data
        )
        self.nodes[node_id] = node
        return node

    def children_of(self, node_id: str) -> list[FakeNode]:
        return [n for n in list(self.nodes.values()) if n.parent_id == node_id]

    def calls_of(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]

    def _record(self, method: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((method, *args))
        if method in self.fail_on:
            raise self.fail_on[method]

    def _wait_gate(self, name: str) -> None:
        self.started.set()
        gate = self.gates.get(name)
        if gate is not None:
            gate.wait(5)

    # Provider interface

    def authorise(self) -> None:
        self._record("authorise")
        if self.reject_auth:
            raise OvercastAuthorisationError("Invalid token")

    def root(self) -> FakeNode:
        return self.nodes["root"]

    def describe(self, handle: FakeNode) -> EntryInfo:
        return EntryInfo(
            id=handle.id,
            name=handle.name,
            kind=EntryKind.FOLDER if handle.is_folder else EntryKind.FILE,
            size=handle.size,
        )

    def list_children(
        self, folder_handle: FakeNode, page_token: Optional[str] = None
    ) -> ListingPage:
        self._record("list_children", folder_handle.id, page_token)
        children = self.children_of(folder_handle.id)
        next_token = None
        if self.page_size:
            start = int(page_token or 0)
            end = start + self.page_size
            if end < len(children):
                next_token = str(end)
            children = children[start:end]
        return ListingPage(
            entries=[
                RawEntry(
                    key=child.id,
                    kind=EntryKind.FOLDER if child.is_folder else EntryKind.FILE,
                    metadata=child if self.listing_metadata else None,
                )
                for child in children
            ],
            next_page_token=next_token,
        )

    def fetch_metadata(self, handle: Any) -> Optional[FakeNode]:
        key = handle.id if isinstance(handle, FakeNode) else handle
        self._record("fetch_metadata", key)
        return self.nodes.get(key)

    def fetch_metadata_batch(self, keys) -> list[FakeNode]:
        keys = list(keys)
        self._record("fetch_metadata_batch", tuple(keys))
        return [self.nodes[key] for key in keys if key in self.nodes]

    def create_folder(self, parent_handle: FakeNode, name: str) -> FakeNode:
        self._record("create_folder", parent_handle.id, name)
        return self.add(parent_handle.id, name, folder=True)

    def copy(self, handle: FakeNode, destination_handle: FakeNode) -> FakeNode:
        self._record("copy", handle.id, destination_handle.id)
        return self._copy_node(handle, destination_handle.id)

    def _copy_node(self, node: FakeNode, parent_id: str) -> FakeNode:
        copied = self.add(parent_id, node.name, folder=node.is_folder, data=node.data)
        for child in self.children_of(node.id):
            self._copy_node(child, copied.id)
        return copied

    def move(self, handle: FakeNode, destination_handle: FakeNode) -> FakeNode:
        self._record("move", handle.id, destination_handle.id)
        handle.parent_id = destination_handle.id
        return handle

    def rename(self, handle: FakeNode, new_name: str) -> FakeNode:
        self._record("rename", handle.id, new_name)
        handle.name = new_name
        return handle

    def delete(self, handle: FakeNode) -> None:
        self._record("delete", handle.id)
        for child in self.children_of(handle.id):
            self.delete(child)
        self.nodes.pop(handle.id, None)

    def upload(self, local_path, parent_handle, name, callback, token):
        self._record("upload", name)
        self._wait_gate(name)
        if token.cancelled:
            callback.on_cancel()
            return None
        data = Path(local_path).read_bytes()
        callback.on_progress(len(data) // 2, len(data))
        callback.on_progress(len(data), len(data))
        return self.add(parent_handle.id, name, data=data)

    def download(self, handle, local_path, callback, token):
        self._record("download", handle.name)
        self._wait_gate(handle.name)
        if token.cancelled:
            callback.on_cancel()
            return None
        Path(local_path).write_bytes(handle.data)
        callback.on_progress(handle.size, handle.size)
        return Path(local_path)

    def free_space(self) -> int:
        self._record("free_space")
        return 1000


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def remote_csp(fake_provider):
    csp = ProviderContext(fake_provider)
    yield csp
    csp.close()


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "local"
    root.mkdir()
    return root


@pytest.fixture
def local_csp(local_root):
    csp = ProviderContext(LocalProvider(local_root))
    yield csp
    csp.close()


class EventRecorder:
    """Listener collecting every event it receives."""

    def __init__(self) -> None:
        self.events: list[Any] = []
        self._lock = threading.Lock()

    def __call__(self, event: Any) -> None:
        with self._lock:
            self.events.append(event)

    @property
    def states(self) -> list[Any]:
        return [event.state for event in self.events]


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def make_recorder():
    return EventRecorder


@pytest.fixture
def make_provider():
    return FakeProvider
