"""Unit tests for the Drime Cloud provider."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from pyovercast.api import DrimeClient
from pyovercast.csp import ProviderContext
from pyovercast.exceptions import (
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
from pyovercast.models import FileEntry
from pyovercast.provider import EntryKind
from pyovercast.providers.drime import ROOT_ID, DrimeProvider
from pyovercast.transfer import CancellationToken


def _entry(entry_id, name, entry_type="text", parent_id=None, **extra):
    data = {
        "id": entry_id,
        "name": name,
        "type": entry_type,
        "hash": f"hash{entry_id}",
        "file_size": 100,
        "parent_id": parent_id,
        "updated_at": "2025-01-15T10:30:00.000000Z",
    }
    data.update(extra)
    return data


@pytest.fixture
def client():
    return Mock(spec=DrimeClient)


@pytest.fixture
def provider(client):
    return DrimeProvider(client, workspace_id=5, per_page=2)


class TestAuthorise:
    """Tests for credential checks."""

    def test_valid_user(self, provider, client):
        client.get_logged_user.return_value = {"user": {"email": "a@b.c"}}
        provider.authorise()

    def test_null_user_rejected(self, provider, client):
        """Test that a null user means the key was rejected."""
        client.get_logged_user.return_value = {"user": None}
        with pytest.raises(OvercastAuthorisationError):
            provider.authorise()

    def test_authentication_error(self, provider, client):
        client.get_logged_user.side_effect = DrimeAuthenticationError("bad key")
        with pytest.raises(OvercastAuthorisationError, match="Invalid API key"):
            provider.authorise()

    def test_context_refuses_unauthorised_provider(self, provider, client):
        """Test that no context is handed out for a rejected key."""
        client.get_logged_user.side_effect = DrimeAPIError("offline")
        with pytest.raises(OvercastAuthorisationError):
            ProviderContext(provider)


class TestListing:
    """Tests for listing and metadata lookups."""

    def test_describe(self, provider):
        """Test the fields read from an entry."""
        info = provider.describe(FileEntry.from_dict(_entry(7, "a.txt")))

        assert info.id == "7"
        assert info.name == "a.txt"
        assert info.kind == EntryKind.FILE
        assert info.size == 100
        assert info.modified is not None

    def test_root_listing_has_no_parent_filter(self, provider, client):
        """Test that the root is listed without parent ids."""
        client.get_file_entries.return_value = {
            "data": [_entry(1, "Docs", "folder"), _entry(2, "a.txt")],
            "current_page": 1,
            "last_page": 2,
        }

        page = provider.list_children(provider.root())

        client.get_file_entries.assert_called_once_with(
            parent_ids=None, workspace_id=5, per_page=2, page=1
        )
        assert [e.key for e in page.entries] == ["1", "2"]
        assert page.entries[0].kind == EntryKind.FOLDER
        assert page.entries[0].metadata.name == "Docs"
        assert page.next_page_token == "2"

    def test_last_page(self, provider, client):
        """Test that the last page has no next token."""
        client.get_file_entries.return_value = {
            "data": [_entry(3, "b.txt", parent_id=9)],
            "current_page": 2,
            "last_page": 2,
        }
        folder = FileEntry.from_dict(_entry(9, "Docs", "folder"))

        page = provider.list_children(folder, "2")

        client.get_file_entries.assert_called_once_with(
            parent_ids=[9], workspace_id=5, per_page=2, page=2
        )
        assert page.next_page_token is None

    def test_listing_error(self, provider, client):
        client.get_file_entries.side_effect = DrimeAPIError("offline")
        with pytest.raises(OvercastOperationError, match="offline"):
            provider.list_children(provider.root())

    def test_fetch_metadata(self, provider, client):
        """Test looking up an entry by key."""
        client.get_file_entry.return_value = {"fileEntry": _entry(7, "a.txt")}

        entry = provider.fetch_metadata("7")

        client.get_file_entry.assert_called_once_with(7, 5)
        assert entry.name == "a.txt"

    def test_fetch_metadata_not_found(self, provider, client):
        client.get_file_entry.side_effect = DrimeNotFoundError("Resource not found")
        assert provider.fetch_metadata("7") is None

    def test_fetch_metadata_error(self, provider, client):
        client.get_file_entry.side_effect = DrimeAPIError("offline")
        with pytest.raises(OvercastAccessError):
            provider.fetch_metadata("7")

    def test_fetch_root(self, provider, client):
        """Test that the root resolves without a request."""
        assert provider.fetch_metadata(str(ROOT_ID)) is provider.root()
        client.get_file_entry.assert_not_called()

    def test_tree_over_pages(self, provider, client):
        """Test building a tree from a paginated listing."""
        pages = {
            1: {
                "data": [_entry(1, "a.txt"), _entry(2, "b.txt")],
                "current_page": 1,
                "last_page": 2,
            },
            2: {"data": [_entry(3, "c.txt")], "current_page": 2, "last_page": 2},
        }
        client.get_logged_user.return_value = {"user": {"email": "a@b.c"}}
        client.get_file_entries.side_effect = lambda **kw: pages[kw["page"]]
        csp = ProviderContext(provider)

        csp.build_file_tree(0)

        assert sorted(c.name for c in csp.root.children) == ["a.txt", "b.txt", "c.txt"]
        assert csp.resolve_path("/c.txt").id == "3"
        csp.close()


class TestOperations:
    """Tests for folder creation and entry operations."""

    def test_create_folder_in_root(self, provider, client):
        client.create_folder.return_value = {"folder": _entry(4, "New", "folder")}

        folder = provider.create_folder(provider.root(), "New")

        client.create_folder.assert_called_once_with("New", None)
        assert folder.is_folder

    def test_create_folder_error(self, provider, client):
        client.create_folder.return_value = {"status": "error"}
        with pytest.raises(OvercastCreationError):
            provider.create_folder(provider.root(), "New")

    def test_copy(self, provider, client):
        """Test that copy returns the duplicated entry."""
        client.duplicate_file_entries.return_value = {
            "entries": [_entry(8, "a.txt", parent_id=4)]
        }
        source = FileEntry.from_dict(_entry(7, "a.txt"))
        destination = FileEntry.from_dict(_entry(4, "Docs", "folder"))

        copied = provider.copy(source, destination)

        client.duplicate_file_entries.assert_called_once_with([7], 4)
        assert copied.id == 8

    def test_move_without_entries_in_response(self, provider, client):
        """Test that move falls back to updating the parent locally."""
        client.move_file_entries.return_value = {}
        source = FileEntry.from_dict(_entry(7, "a.txt", parent_id=4))

        moved = provider.move(source, provider.root())

        client.move_file_entries.assert_called_once_with([7], None)
        assert moved.parent_id is None
        assert moved.id == 7

    def test_rename(self, provider, client):
        client.update_file_entry.return_value = {"fileEntry": _entry(7, "b.txt")}
        source = FileEntry.from_dict(_entry(7, "a.txt"))

        assert provider.rename(source, "b.txt").name == "b.txt"
        client.update_file_entry.assert_called_once_with(7, name="b.txt")

    def test_delete_uses_trash_by_default(self, provider, client):
        provider.delete(FileEntry.from_dict(_entry(7, "a.txt")))
        client.delete_file_entries.assert_called_once_with(
            [7], delete_forever=False, workspace_id=5
        )

    def test_delete_error(self, provider, client):
        client.delete_file_entries.side_effect = DrimeAPIError("offline")
        with pytest.raises(OvercastOperationError):
            provider.delete(FileEntry.from_dict(_entry(7, "a.txt")))

    def test_free_space(self, provider, client):
        client.get_space_usage.return_value = {"used": 10, "available": 90}
        assert provider.free_space() == 90


class TestTransfers:
    """Tests for upload and download."""

    def test_upload(self, provider, client, tmp_path):
        """Test a successful upload reports success with the new entry."""
        path = tmp_path / "a.txt"
        path.write_bytes(b"abc")
        client.upload_file.return_value = {"fileEntry": _entry(7, "a.txt")}
        callback = Mock()
        folder = FileEntry.from_dict(_entry(4, "Docs", "folder"))

        entry = provider.upload(path, folder, "a.txt", callback, CancellationToken())

        assert entry.id == 7
        assert client.upload_file.call_args.kwargs["parent_id"] == 4
        assert client.upload_file.call_args.kwargs["workspace_id"] == 5
        callback.on_success.assert_called_once_with(entry)

    def test_upload_cancel_check_follows_token(self, provider, client, tmp_path):
        """Test that the client's cancel check reads the job's token."""
        path = tmp_path / "a.txt"
        path.write_bytes(b"abc")
        token = CancellationToken()
        client.upload_file.return_value = {"fileEntry": _entry(7, "a.txt")}

        provider.upload(path, provider.root(), "a.txt", Mock(), token)
        should_cancel = client.upload_file.call_args.kwargs["should_cancel"]

        assert should_cancel() is False
        token.cancel()
        assert should_cancel() is True

    def test_upload_cancelled(self, provider, client, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"abc")
        client.upload_file.side_effect = DrimeCancelledError("Transfer cancelled")
        callback = Mock()

        result = provider.upload(path, provider.root(), "a.txt", callback, CancellationToken())

        assert result is None
        callback.on_cancel.assert_called_once()
        callback.on_success.assert_not_called()

    def test_upload_failure(self, provider, client, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"abc")
        client.upload_file.side_effect = DrimeAPIError("quota exceeded")

        with pytest.raises(OvercastTransferError, match="quota exceeded"):
            provider.upload(path, provider.root(), "a.txt", Mock(), CancellationToken())

    def test_download(self, provider, client, tmp_path):
        """Test that download streams the entry's hash to the target."""
        target = tmp_path / "a.txt"
        callback = Mock()

        result = provider.download(
            FileEntry.from_dict(_entry(7, "a.txt")), target, callback, CancellationToken()
        )

        assert result == target
        assert client.download_file.call_args.args == ("hash7", target)
        callback.on_success.assert_called_once_with(target)

    def test_download_cancelled_removes_partial_file(self, provider, client, tmp_path):
        target = tmp_path / "a.txt"

        def partial_download(hash_value, output_path, **kwargs):
            Path(output_path).write_bytes(b"par")
            raise DrimeCancelledError("Transfer cancelled")

        client.download_file.side_effect = partial_download
        callback = Mock()

        result = provider.download(
            FileEntry.from_dict(_entry(7, "a.txt")), target, callback, CancellationToken()
        )

        assert result is None
        assert not target.exists()
        callback.on_cancel.assert_called_once()
