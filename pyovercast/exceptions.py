"""Exceptions raised by pyovercast."""


class OvercastError(Exception):
    """Base exception for all pyovercast errors."""


class OvercastConfigError(OvercastError):
    """Raised when required configuration is missing or invalid."""


class OvercastAccessError(OvercastError):
    """Raised when the existence of a container cannot be determined."""


class OvercastOperationError(OvercastError):
    """Raised when a provider-side operation (copy, move, ...) fails."""


class OvercastAlreadyExistsError(OvercastOperationError):
    """Raised when the destination already holds a container of that name."""


class OvercastCreationError(OvercastOperationError):
    """Raised when a folder or file cannot be created."""


class OvercastTransferError(OvercastError):
    """Raised when an upload or download is rejected or interrupted."""


class OvercastAuthorisationError(OvercastError):
    """Raised when a provider rejects the credentials it was built with."""


# =============================================================================
# Drime Cloud HTTP client errors
# =============================================================================


class DrimeAPIError(OvercastError):
    """Base exception for Drime Cloud API errors."""


class DrimeAuthenticationError(DrimeAPIError):
    """Raised when the API key is invalid or unauthorized."""


class DrimePermissionError(DrimeAPIError):
    """Raised when access to a resource is forbidden."""


class DrimeNotFoundError(DrimeAPIError):
    """Raised when the requested resource does not exist."""


class DrimeRateLimitError(DrimeAPIError):
    """Raised when the API rate limit is exceeded."""


class DrimeNetworkError(DrimeAPIError):
    """Raised on connection problems and timeouts."""


class DrimeInvalidResponseError(DrimeAPIError):
    """Raised when the server returns something that is not valid JSON."""


class DrimeUploadError(DrimeAPIError):
    """Raised when an upload fails."""


class DrimeDownloadError(DrimeAPIError):
    """Raised when a download fails."""


class DrimeCancelledError(DrimeAPIError):
    """Raised when a transfer is stopped on request."""


class DrimeFileNotFoundError(DrimeAPIError):
    """Raised when a local file to upload does not exist."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"File not found: {file_path}")
