"""HTTP client for the Drime Cloud API."""

from __future__ import annotations

import logging
import math
import mimetypes
import random
import time
from pathlib import Path
from typing import Any, Callable

import httpx

from .config import config
from .exceptions import (
    DrimeAPIError,
    DrimeAuthenticationError,
    DrimeCancelledError,
    DrimeDownloadError,
    DrimeFileNotFoundError,
    DrimeInvalidResponseError,
    DrimeNetworkError,
    DrimeNotFoundError,
    DrimePermissionError,
    DrimeRateLimitError,
    DrimeUploadError,
    OvercastConfigError,
)
from .utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MULTIPART_THRESHOLD,
    DEFAULT_PER_PAGE,
    DEFAULT_RETRY_DELAY,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]

# Chunk size used for progress reporting of streamed transfers (64 KB)
STREAM_CHUNK_SIZE = 64 * 1024


class DrimeClient:
    """Client for the Drime Cloud file-entry, folder and transfer endpoints."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
    ):
        """Initialize the client.

        Args:
            api_key: API key (uses config if not provided)
            api_url: API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)

        Raises:
            OvercastConfigError: If no API key is available
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.api_key:
            raise OvercastConfigError(
                "API key not configured. Please set DRIME_API_KEY environment variable."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    # =========================
    # Request handling
    # =========================

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _map_status_error(self, e: httpx.HTTPStatusError) -> DrimeAPIError:
        """Translate an HTTP status error into a client exception."""
        status_code = e.response.status_code
        if status_code == 401:
            return DrimeAuthenticationError("Invalid API key or unauthorized access")
        if status_code == 403:
            return DrimePermissionError("Access forbidden - check your permissions")
        if status_code == 404:
            return DrimeNotFoundError("Resource not found")
        if status_code == 429:
            return DrimeRateLimitError("Rate limit exceeded - please try again later")

        message = f"API request failed with status {status_code}"
        try:
            data = e.response.json() if e.response.content else None
        except ValueError:
            data = None
        if isinstance(data, dict):
            detail = data.get("message") or data.get("error") or data.get("detail")
            if detail:
                message = f"{message}: {detail}"
        return DrimeAPIError(message)

    def _is_retryable(self, e: httpx.HTTPStatusError) -> bool:
        status_code = e.response.status_code
        return status_code == 429 or 500 <= status_code < 600

    def _retry_after(self, e: httpx.HTTPStatusError, attempt: int) -> float:
        if e.response.status_code == 429:
            retry_after = e.response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return float(retry_after)
        return self._calculate_retry_delay(attempt)

    @staticmethod
    def _parse_response(response: httpx.Response) -> Any:
        if not response.content:
            return {}

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            # An HTML page usually means the key was rejected
            if "text/html" in content_type:
                raise DrimeAuthenticationError(
                    "Invalid API key - server returned HTML instead of JSON"
                )
            raise DrimeInvalidResponseError(f"Unexpected response type: {content_type}")

        try:
            return response.json()
        except ValueError as e:
            raise DrimeInvalidResponseError("Invalid JSON response from server") from e

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Network errors, rate limits and 5xx responses are retried with
        exponential backoff; a ``Retry-After`` header on 429 is honoured.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for an empty body)

        Raises:
            DrimeAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return self._parse_response(response)
            except httpx.HTTPStatusError as e:
                error = self._map_status_error(e)
                if self._is_retryable(e) and attempt < self.max_retries:
                    delay = self._retry_after(e, attempt)
                    logger.debug(f"{method} {endpoint}: {error}, retrying in {delay:.1f}s")
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"{method} {endpoint}: {e}, retrying in {delay:.1f}s")
                    time.sleep(delay)
                    continue
                raise DrimeNetworkError(f"Network error: {e}") from e

        raise DrimeAPIError("Request failed after all retry attempts")

    # =========================
    # Upload Operations
    # =========================

    @staticmethod
    def _detect_mime_type(file_path: Path) -> str:
        mime_type, _ = mimetypes.guess_type(str(file_path))
        return mime_type or "application/octet-stream"

    @staticmethod
    def _check_cancel(should_cancel: CancelCheck | None) -> None:
        if should_cancel is not None and should_cancel():
            raise DrimeCancelledError("Transfer cancelled")

    def upload_file(
        self,
        file_path: Path,
        parent_id: int | None = None,
        workspace_id: int = 0,
        relative_path: str | None = None,
        use_multipart_threshold: int = DEFAULT_MULTIPART_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> Any:
        """Upload a file, choosing presigned or multipart upload by size.

        Args:
            file_path: Local path to the file
            parent_id: Folder to upload into (None for the root)
            workspace_id: ID of the workspace (default: 0 for personal)
            relative_path: Optional relative path, folders in it are created
            use_multipart_threshold: Size from which multipart upload is used
            chunk_size: Part size for multipart uploads
            progress_callback: Optional callback(bytes_uploaded, total_bytes)
            should_cancel: Optional check polled between chunks

        Returns:
            Upload response data with a 'fileEntry' key

        Raises:
            DrimeFileNotFoundError: If the file doesn't exist
            DrimeCancelledError: If should_cancel returned True
            DrimeUploadError: If the upload fails
        """
        if not file_path.exists():
            raise DrimeFileNotFoundError(str(file_path))

        if file_path.stat().st_size > use_multipart_threshold:
            return self.upload_file_multipart(
                file_path,
                parent_id=parent_id,
                workspace_id=workspace_id,
                relative_path=relative_path,
                chunk_size=chunk_size,
                progress_callback=progress_callback,
                should_cancel=should_cancel,
            )
        return self.upload_file_presign(
            file_path,
            parent_id=parent_id,
            workspace_id=workspace_id,
            relative_path=relative_path,
            progress_callback=progress_callback,
            should_cancel=should_cancel,
        )

    def _create_entry(
        self,
        file_path: Path,
        key: str,
        mime_type: str,
        parent_id: int | None,
        workspace_id: int,
        relative_path: str | None,
    ) -> Any:
        payload: dict[str, Any] = {
            "clientMime": mime_type,
            "clientName": file_path.name,
            "filename": key.split("/")[-1],
            "size": file_path.stat().st_size,
            "clientExtension": file_path.suffix.lstrip("."),
            "relativePath": relative_path or "",
            "workspaceId": workspace_id,
        }
        if parent_id is not None:
            payload["parentId"] = parent_id
        return self._request("POST", "/s3/entries", json=payload)

    def upload_file_presign(
        self,
        file_path: Path,
        parent_id: int | None = None,
        workspace_id: int = 0,
        relative_path: str | None = None,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> Any:
        """Upload a file through a presigned S3 URL.

        1. Get a presigned URL from the API
        2. Stream the file to S3
        3. Create the file entry

        Returns:
            Upload response data with a 'fileEntry' key
        """
        if not file_path.exists():
            raise DrimeFileNotFoundError(str(file_path))

        file_size = file_path.stat().st_size
        mime_type = self._detect_mime_type(file_path)

        presign = self._request(
            "POST",
            "/s3/simple/presign",
            json={
                "filename": file_path.name,
                "mime": mime_type,
                "size": file_size,
                "extension": file_path.suffix.lstrip("."),
                "relativePath": relative_path or "",
                "workspaceId": workspace_id,
                "parentId": parent_id,
            },
            params={"workspaceId": workspace_id},
        )
        presigned_url = presign.get("url")
        key = presign.get("key")
        if not presigned_url or not key:
            raise DrimeUploadError(f"Invalid presign response: {presign}")

        def file_reader() -> Any:
            bytes_uploaded = 0
            with open(file_path, "rb") as f:
                while True:
                    self._check_cancel(should_cancel)
                    chunk = f.read(STREAM_CHUNK_SIZE)
                    if not chunk:
                        break
                    bytes_uploaded += len(chunk)
                    if progress_callback:
                        progress_callback(bytes_uploaded, file_size)
                    yield chunk

        try:
            response = httpx.put(
                presigned_url,
                content=file_reader(),
                headers={
                    "Content-Type": mime_type,
                    "Content-Length": str(file_size),
                    "x-amz-acl": "private",
                },
                timeout=60.0,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DrimeUploadError(f"S3 upload failed: {e}") from e
        except httpx.RequestError as e:
            raise DrimeUploadError(f"Network error during S3 upload: {e}") from e

        return self._create_entry(
            file_path, key, mime_type, parent_id, workspace_id, relative_path
        )

    def upload_file_multipart(
        self,
        file_path: Path,
        parent_id: int | None = None,
        workspace_id: int = 0,
        relative_path: str | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> Any:
        """Upload a large file in parts; the upload is aborted on any error.

        Returns:
            Upload response data with a 'fileEntry' key
        """
        if not file_path.exists():
            raise DrimeFileNotFoundError(str(file_path))

        file_size = file_path.stat().st_size
        mime_type = self._detect_mime_type(file_path)
        num_parts = max(1, math.ceil(file_size / chunk_size))

        init = self._request(
            "POST",
            "/s3/multipart/create",
            json={
                "filename": file_path.name,
                "mime": mime_type,
                "size": file_size,
                "extension": file_path.suffix.lstrip("."),
                "relativePath": relative_path or "",
                "workspaceId": workspace_id,
            },
        )
        upload_id = init.get("uploadId")
        key = init.get("key")
        if not upload_id or not key:
            raise DrimeUploadError("Failed to initialize multipart upload")

        parts = []
        bytes_uploaded = 0
        try:
            with open(file_path, "rb") as f:
                for batch_start in range(1, num_parts + 1, 10):
                    part_numbers = list(
                        range(batch_start, min(batch_start + 10, num_parts + 1))
                    )
                    signed = self._request(
                        "POST",
                        "/s3/multipart/batch-sign-part-urls",
                        json={"key": key, "uploadId": upload_id, "partNumbers": part_numbers},
                    )
                    urls = {u["partNumber"]: u["url"] for u in signed.get("urls", [])}

                    for part_number in part_numbers:
                        self._check_cancel(should_cancel)
                        chunk = f.read(chunk_size)
                        if part_number not in urls:
                            raise DrimeUploadError(f"No signed URL for part {part_number}")
                        response = httpx.put(
                            urls[part_number],
                            content=chunk,
                            headers={"Content-Type": "application/octet-stream"},
                            timeout=60,
                        )
                        response.raise_for_status()
                        parts.append(
                            {
                                "PartNumber": part_number,
                                "ETag": response.headers.get("ETag", "").strip('"'),
                            }
                        )
                        bytes_uploaded += len(chunk)
                        if progress_callback:
                            progress_callback(bytes_uploaded, file_size)

            self._request(
                "POST",
                "/s3/multipart/complete",
                json={"key": key, "uploadId": upload_id, "parts": parts},
            )
        except Exception as e:
            self._abort_multipart(key, upload_id)
            if isinstance(e, (DrimeCancelledError, DrimeUploadError)):
                raise
            raise DrimeUploadError(f"Multipart upload failed: {e}") from e

        return self._create_entry(
            file_path, key, mime_type, parent_id, workspace_id, relative_path
        )

    def _abort_multipart(self, key: str, upload_id: str) -> None:
        try:
            self._request(
                "POST", "/s3/multipart/abort", json={"key": key, "uploadId": upload_id}
            )
        except DrimeAPIError as e:
            logger.warning(f"Couldn't abort multipart upload {upload_id}: {e}")

    # =========================
    # Download Operations
    # =========================

    def download_file(
        self,
        hash_value: str,
        output_path: Path,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
        timeout: int = 60,
    ) -> Path:
        """Stream a file to disk.

        Args:
            hash_value: Hash of the file to download
            output_path: Path where to save the file
            progress_callback: Optional callback(bytes_downloaded, total_bytes)
            should_cancel: Optional check polled between chunks
            timeout: Request timeout in seconds (default: 60)

        Returns:
            Path where the file was saved

        Raises:
            DrimeCancelledError: If should_cancel returned True
            DrimeDownloadError: If the download fails
        """
        url = f"{self.api_url}/file-entries/download/{hash_value}"
        client = self._get_client()

        try:
            with client.stream("GET", url, timeout=timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))
                bytes_downloaded = 0
                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=STREAM_CHUNK_SIZE):
                        self._check_cancel(should_cancel)
                        f.write(chunk)
                        bytes_downloaded += len(chunk)
                        if progress_callback:
                            progress_callback(bytes_downloaded, total_size)
        except httpx.HTTPStatusError as e:
            raise DrimeDownloadError(f"Download failed: {e}") from e
        except httpx.RequestError as e:
            raise DrimeNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            raise DrimeDownloadError(f"Failed to write file: {e}") from e

        return output_path

    # =========================
    # File Entry Operations
    # =========================

    def get_file_entries(
        self,
        parent_ids: list[int] | None = None,
        workspace_id: int = 0,
        per_page: int = DEFAULT_PER_PAGE,
        page: int | None = None,
    ) -> Any:
        """List file entries, optionally only the children of given folders.

        Args:
            parent_ids: Only entries inside these folders (None for the root)
            workspace_id: Workspace ID (default: 0 for personal)
            per_page: Entries per page
            page: Page number (1-based)

        Returns:
            Paginated response with a 'data' list
        """
        params: dict[str, Any] = {"perPage": per_page, "workspaceId": workspace_id}
        if page is not None:
            params["page"] = page
        if parent_ids:
            params["parentIds"] = ",".join(map(str, parent_ids))
        return self._request("GET", "/drive/file-entries", params=params)

    def get_file_entry(self, entry_id: int, workspace_id: int = 0) -> Any:
        """Get a single file entry by ID."""
        return self._request(
            "GET", f"/file-entries/{entry_id}", params={"workspaceId": workspace_id}
        )

    def update_file_entry(self, entry_id: int, name: str) -> Any:
        """Rename a file entry.

        Returns:
            Response with a 'fileEntry' key
        """
        return self._request("PUT", f"/file-entries/{entry_id}", json={"name": name})

    def delete_file_entries(
        self, entry_ids: list[int], delete_forever: bool = False, workspace_id: int = 0
    ) -> Any:
        """Move entries to the trash, or delete them permanently."""
        return self._request(
            "POST",
            "/file-entries/delete",
            params={"workspaceId": workspace_id},
            json={"entryIds": entry_ids, "deleteForever": delete_forever},
        )

    def move_file_entries(
        self, entry_ids: list[int], destination_id: int | None = None
    ) -> Any:
        """Move entries into a folder (None for the root).

        Returns:
            Response with an 'entries' key
        """
        data: dict[str, Any] = {"entryIds": entry_ids}
        if destination_id is not None:
            data["destinationId"] = destination_id
        return self._request("POST", "/file-entries/move", json=data)

    def duplicate_file_entries(
        self, entry_ids: list[int], destination_id: int | None = None
    ) -> Any:
        """Copy entries into a folder (None for the root).

        Returns:
            Response with an 'entries' key
        """
        data: dict[str, Any] = {"entryIds": entry_ids}
        if destination_id is not None:
            data["destinationId"] = destination_id
        return self._request("POST", "/file-entries/duplicate", json=data)

    def create_folder(self, name: str, parent_id: int | None = None) -> Any:
        """Create a folder.

        Returns:
            Response with a 'folder' key
        """
        data: dict[str, Any] = {"name": name}
        if parent_id is not None:
            data["parentId"] = parent_id
        return self._request("POST", "/folders", json=data)

    # =========================
    # Account Operations
    # =========================

    def get_logged_user(self) -> Any:
        """Get the user the API key belongs to."""
        return self._request("GET", "/cli/loggedUser")

    def get_space_usage(self) -> Any:
        """Get used and available space of the current user."""
        return self._request("GET", "/user/space-usage")
