"""PyOvercast - one file and folder model over local and cloud storage."""

from .container import Container, File, Folder
from .csp import ProviderContext
from .exceptions import (
    OvercastAccessError,
    OvercastAlreadyExistsError,
    OvercastAuthorisationError,
    OvercastConfigError,
    OvercastCreationError,
    OvercastError,
    OvercastOperationError,
    OvercastTransferError,
)
from .operations import Operation, OperationEvent, OperationState
from .provider import EntryInfo, EntryKind, ListingPage, RawEntry, StorageProvider
from .transfer import (
    DownloadJob,
    TransferDirection,
    TransferEvent,
    TransferJob,
    TransferState,
    UploadJob,
)
from .tree import UNLIMITED_DEPTH

__all__ = [
    "Container",
    "DownloadJob",
    "EntryInfo",
    "EntryKind",
    "File",
    "Folder",
    "ListingPage",
    "Operation",
    "OperationEvent",
    "OperationState",
    "OvercastAccessError",
    "OvercastAlreadyExistsError",
    "OvercastAuthorisationError",
    "OvercastConfigError",
    "OvercastCreationError",
    "OvercastError",
    "OvercastOperationError",
    "OvercastTransferError",
    "ProviderContext",
    "RawEntry",
    "StorageProvider",
    "TransferDirection",
    "TransferEvent",
    "TransferJob",
    "TransferState",
    "UNLIMITED_DEPTH",
    "UploadJob",
]
