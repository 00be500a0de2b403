"""Local file state for sync operations."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..utils import to_whole_seconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalFileState:
    """Filesystem state of one local file, derived fresh on every read."""

    path: str
    """Path exactly as given (the synchronization key)"""

    exists: bool
    """True if the path is a readable regular file"""

    modified_at: Optional[int] = None
    """Last modification time in whole seconds (None if not existing)"""

    @classmethod
    def missing(cls, path: str) -> "LocalFileState":
        return cls(path=path, exists=False, modified_at=None)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "LocalFileState":
        """Read the state of a local file.

        Filesystem errors (permission denied, path is a directory, ...)
        are reported as a missing file rather than raised.

        Args:
            path: Local path

        Returns:
            LocalFileState for the path
        """
        key = str(path)
        file_path = Path(path)
        try:
            if not file_path.is_file():
                return cls.missing(key)
            stat = file_path.stat()
            if not os.access(file_path, os.R_OK):
                logger.debug("No read permission for %s", key)
                return cls.missing(key)
        except OSError as e:
            logger.debug("Cannot read metadata of %s: %s", key, e)
            return cls.missing(key)

        return cls(path=key, exists=True, modified_at=to_whole_seconds(stat.st_mtime))
