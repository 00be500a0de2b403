"""Utility functions for the SKB client."""

import math
import os
import time
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Number of random bytes in a request nonce
NONCE_SIZE: int = 128

# Header carrying the base64 request signature
SIGNATURE_HEADER: str = "SIGNATURE"

# Default request timeout in seconds
DEFAULT_TIMEOUT: float = 30.0


# =============================================================================
# Timestamp utilities
# =============================================================================


def to_whole_seconds(timestamp: float) -> int:
    """Round a unix timestamp down to whole seconds.

    Sub-second differences are not significant when comparing local and
    remote modification times.

    Examples:
        >>> to_whole_seconds(1000.9)
        1000
        >>> to_whole_seconds(-1.5)
        -2
    """
    return math.floor(timestamp)


def get_local_mtime(path: Path) -> int:
    """Get the modification time of a local file in whole seconds.

    Args:
        path: Path to the file

    Returns:
        Unix timestamp in seconds

    Raises:
        OSError: If the file metadata cannot be read
    """
    return to_whole_seconds(path.stat().st_mtime)


def set_local_mtime(path: Path, timestamp: int) -> None:
    """Set the modification time of a local file, keeping its access time."""
    atime = path.stat().st_atime
    os.utime(path, (atime, timestamp))


def format_http_date(timestamp: float) -> str:
    """Format a unix timestamp as an HTTP date (IMF-fixdate, GMT).

    Examples:
        >>> format_http_date(0)
        'Thu, 01 Jan 1970 00:00:00 GMT'
    """
    dt = datetime.fromtimestamp(to_whole_seconds(timestamp), tz=timezone.utc)
    return format_datetime(dt, usegmt=True)


def parse_http_date(value: Optional[str]) -> Optional[int]:
    """Parse an HTTP date header into a unix timestamp in seconds.

    Args:
        value: Header value (e.g. "Thu, 01 Jan 1970 00:16:40 GMT")

    Returns:
        Unix timestamp or None if the value is missing or malformed
    """
    if not value:
        return None

    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return to_whole_seconds(dt.timestamp())


def now_timestamp() -> int:
    """Current time as a unix timestamp in whole seconds."""
    return to_whole_seconds(time.time())


def format_timestamp(timestamp: int) -> str:
    """Format a unix timestamp in local time for display.

    Examples:
        >>> format_timestamp(0)  # doctest: +SKIP
        '1970-01-01 00:00:00'
    """
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format a byte count in human-readable form.

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
    elif size_bytes < 1024 * 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024 / 1024:.1f} TB"


def percent_of(part: int, total: int) -> int:
    """Integer percentage of part in total (0 when total is 0)."""
    if total <= 0:
        return 0
    return part * 100 // total
