"""Utility functions for pyovercast."""

from datetime import datetime
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Logical root of every provider tree
ROOT_PATH: str = "/"

# Chunk size for multipart uploads and local copies (25 MB)
DEFAULT_CHUNK_SIZE: int = 25 * 1024 * 1024

# Threshold for using multipart upload (30 MB)
DEFAULT_MULTIPART_THRESHOLD: int = 30 * 1024 * 1024

# Number of entries requested per listing page
DEFAULT_PER_PAGE: int = 100

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds


# =============================================================================
# Path utilities
# =============================================================================


def join_path(parent_path: Optional[str], name: str) -> str:
    """Join a logical parent path and a child name.

    Args:
        parent_path: Path of the parent folder (None or "/" for the root)
        name: Name of the child

    Returns:
        Logical path of the child, always starting with "/"

    Examples:
        >>> join_path("/Docs", "report.pdf")
        '/Docs/report.pdf'
        >>> join_path("/", "report.pdf")
        '/report.pdf'
        >>> join_path("/", "")
        '/'
    """
    if not parent_path or parent_path == ROOT_PATH:
        return ROOT_PATH + name
    if not name:
        return parent_path
    return f"{parent_path.rstrip('/')}/{name}"


def strip_path_prefix(path: Optional[str], prefix: Optional[str]) -> Optional[str]:
    """Strip a provider-specific prefix from the front of a path.

    Providers expose paths under different roots (e.g. a mount point or
    an absolute local directory). Stripping the prefix standardizes paths so
    that every tree starts at "/".

    Args:
        path: Raw path as reported by the provider
        prefix: Prefix to remove

    Returns:
        The path without the prefix, "/" if nothing remains, or the path
        unchanged if it does not start with the prefix

    Examples:
        >>> strip_path_prefix("/srv/share/Docs", "/srv/share")
        '/Docs'
        >>> strip_path_prefix("/srv/share", "/srv/share")
        '/'
        >>> strip_path_prefix("/Docs", "/srv/share")
        '/Docs'
    """
    if not path or path == ROOT_PATH or not prefix or prefix == ROOT_PATH:
        return path
    if not path.startswith(prefix):
        return path
    if len(path) <= len(prefix):
        return ROOT_PATH

    stripped = path[len(prefix) :]
    if not stripped.startswith("/"):
        # Prefix matched only part of a name ("/data" vs "/database")
        return path
    return stripped


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO format timestamp as returned by cloud APIs.

    Args:
        timestamp_str: ISO format timestamp string (e.g., "2025-01-15T10:30:00.000000Z")

    Returns:
        datetime object in local timezone or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"

        try:
            dt = datetime.fromisoformat(timestamp_str)
        except ValueError:
            # Try without microseconds
            if "." in timestamp_str:
                timestamp_str = timestamp_str.split(".")[0] + "+00:00"
            dt = datetime.fromisoformat(timestamp_str)

        if dt.tzinfo is not None:
            # Convert to local naive datetime
            return datetime.fromtimestamp(dt.timestamp())
        return dt
    except (ValueError, AttributeError):
        return None


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
