"""Unit tests for the copy/move/rename/delete lifecycle."""

import pytest

from pyovercast.exceptions import (
    OvercastAlreadyExistsError,
    OvercastError,
    OvercastOperationError,
)
from pyovercast.operations import Operation, OperationState


@pytest.fixture
def tree(remote_csp, fake_provider):
    """Remote tree: /src/a.txt, /dst/ and /dst/other.txt."""
    src = fake_provider.add("root", "src", folder=True)
    dst = fake_provider.add("root", "dst", folder=True)
    fake_provider.add(src.id, "a.txt", data=b"abc")
    fake_provider.add(dst.id, "other.txt", data=b"x")
    remote_csp.build_file_tree()
    fake_provider.calls.clear()
    root = remote_csp.root
    return {
        "root": root,
        "src": root.find("src"),
        "dst": root.find("dst"),
        "file": root.find("src").find("a.txt"),
    }


class TestCopy:
    """Tests for the COPY operation."""

    def test_copy_adds_new_container(self, tree, fake_provider, recorder):
        """Test that a copy lands in the destination and the source stays."""
        result = tree["file"].copy(tree["dst"], recorder)

        assert result is not tree["file"]
        assert result in tree["dst"]
        assert result.path == "/dst/a.txt"
        assert tree["file"] in tree["src"]
        assert len(fake_provider.calls_of("copy")) == 1

    def test_copy_notifies_completed(self, tree, recorder):
        """Test that the call's listener gets COMPLETED with the copy."""
        result = tree["file"].copy(tree["dst"], recorder)

        assert recorder.states == [OperationState.COMPLETED]
        event = recorder.events[0]
        assert event.operation == Operation.COPY
        assert event.progress == 1.0
        assert event.affected is result
        assert event.container is tree["file"]

    def test_copy_with_existing_name_fails_before_provider_call(
        self, tree, fake_provider, remote_csp
    ):
        """Test that a name clash without overwrite fails with no provider call."""
        clash = fake_provider.add(tree["dst"].id, "a.txt", data=b"old")
        tree["dst"].add(remote_csp.factory.create_file(clash))
        before = [c.id for c in tree["dst"].children]

        with pytest.raises(OvercastAlreadyExistsError):
            tree["file"].copy(tree["dst"])

        assert fake_provider.calls == []
        assert [c.id for c in tree["dst"].children] == before

    def test_copy_already_exists_is_operation_failure(self, tree, fake_provider, remote_csp):
        """Test that the clash error is also an operation failure."""
        clash = fake_provider.add(tree["dst"].id, "A.TXT")
        tree["dst"].add(remote_csp.factory.create_file(clash))

        with pytest.raises(OvercastOperationError):
            tree["file"].copy(tree["dst"])

    def test_copy_with_overwrite_replaces(self, tree, fake_provider, remote_csp):
        """Test that overwrite deletes the existing entry first."""
        clash = fake_provider.add(tree["dst"].id, "a.txt", data=b"old")
        existing = remote_csp.factory.create_file(clash)
        tree["dst"].add(existing)

        result = tree["file"].copy(tree["dst"], overwrite=True)

        assert existing not in tree["dst"]
        assert result in tree["dst"]
        assert [c[0] for c in fake_provider.calls] == ["delete", "copy"]

    def test_same_name_folder_does_not_clash_with_file(self, tree, remote_csp):
        """Test that only a container of the same kind counts as a clash."""
        tree["dst"].create_folder("a.txt")

        result = tree["file"].copy(tree["dst"])

        assert result in tree["dst"]


class TestMove:
    """Tests for the MOVE operation."""

    def test_move_changes_parent(self, tree, fake_provider):
        """Test that a moved container leaves its old folder."""
        container = tree["file"]
        container.move(tree["dst"])

        assert container not in tree["src"]
        assert container in tree["dst"]
        assert container.path == "/dst/a.txt"
        assert fake_provider.nodes[container.id].parent_id == tree["dst"].id

    def test_move_folder_keeps_known_children(self, tree):
        """Test that children with stable ids survive a folder move."""
        container = tree["file"]
        tree["src"].move(tree["dst"])

        assert tree["src"].find("a.txt") is container
        assert container.path == "/dst/src/a.txt"

    def test_move_folder_drops_children_it_cant_refresh(self, tree, fake_provider):
        """Test that a failed refresh leaves no stale children behind."""
        container = tree["file"]
        fake_provider.fail_on["list_children"] = OvercastError("offline")

        tree["src"].move(tree["dst"])

        assert tree["src"] in tree["dst"]
        assert len(tree["src"]) == 0
        assert container.parent is None

    def test_move_folder_into_itself_fails(self, tree):
        """Test that a folder can't be moved below itself."""
        sub = tree["src"].create_folder("sub")

        with pytest.raises(OvercastOperationError, match="into itself"):
            tree["src"].move(sub)


class TestRename:
    """Tests for the RENAME operation."""

    def test_rename(self, tree, recorder):
        """Test renaming updates name and path."""
        tree["file"].rename("b.txt", recorder)

        assert tree["file"].name == "b.txt"
        assert tree["file"].path == "/src/b.txt"
        assert recorder.states == [OperationState.COMPLETED]

    def test_rename_to_sibling_name_fails(self, tree, fake_provider):
        """Test that rename never replaces a sibling."""
        with pytest.raises(OvercastAlreadyExistsError):
            tree["dst"].rename("SRC")
        assert fake_provider.calls == []

    def test_rename_root_fails(self, tree):
        """Test that the root can't be renamed."""
        with pytest.raises(OvercastOperationError):
            tree["root"].rename("x")


class TestDelete:
    """Tests for the DELETE operation."""

    def test_delete_removes_from_parent(self, tree, fake_provider):
        """Test deleting a file."""
        container = tree["file"]
        container.delete()

        assert container not in tree["src"]
        assert container.id not in fake_provider.nodes

    def test_delete_root_fails(self, tree, fake_provider):
        """Test that the root folder can't be deleted."""
        with pytest.raises(OvercastOperationError):
            tree["root"].delete()
        assert fake_provider.calls_of("delete") == []


class TestFailurePath:
    """Tests for provider failures and listener cleanup."""

    def test_provider_failure_wrapped(self, tree, fake_provider, recorder):
        """Test that a provider fault becomes an operation failure."""
        fake_provider.fail_on["copy"] = OvercastError("quota exceeded")

        with pytest.raises(OvercastOperationError, match="COPY failed! quota exceeded") as exc:
            tree["file"].copy(tree["dst"], recorder)

        assert isinstance(exc.value.__cause__, OvercastError)
        assert recorder.states == [OperationState.FAILED]
        assert recorder.events[0].progress == 0.0

    def test_tree_unchanged_on_failure(self, tree, fake_provider):
        """Test that a failed move leaves the tree as it was."""
        fake_provider.fail_on["move"] = OvercastError("offline")

        with pytest.raises(OvercastOperationError):
            tree["file"].move(tree["dst"])

        assert tree["file"] in tree["src"]
        assert tree["file"] not in tree["dst"]

    def test_temporary_listeners_removed_after_success(self, tree, recorder):
        """Test that call-scoped listeners hear only their own call."""
        tree["file"].copy(tree["dst"], recorder)
        tree["file"].copy(tree["root"])

        assert len(recorder.events) == 1
        assert not tree["file"].listeners.has_listener(recorder, temporary=True)

    def test_temporary_listeners_removed_after_failure(self, tree, fake_provider, recorder):
        """Test that cleanup also happens when the operation fails."""
        fake_provider.fail_on["rename"] = OvercastError("offline")

        with pytest.raises(OvercastOperationError):
            tree["file"].rename("b.txt", recorder)

        assert not tree["file"].listeners.has_listener(recorder, temporary=True)

    def test_durable_and_temporary_listener_notified_once(self, tree, recorder):
        """Test that a listener passed to a call it already watches hears it once."""
        tree["file"].add_listener(recorder, Operation.COPY)

        tree["file"].copy(tree["dst"], recorder)

        assert len(recorder.events) == 1
        assert tree["file"].listeners.has_listener(recorder, Operation.COPY)

    def test_durable_listener_survives_calls(self, tree, recorder):
        """Test that durable listeners keep receiving events."""
        tree["file"].add_listener(recorder, Operation.COPY)

        tree["file"].copy(tree["dst"])
        tree["file"].copy(tree["root"])

        assert len(recorder.events) == 2
