"""Sync operations wrapper for upload/download/delete."""

import logging
import os
import stat
import tempfile
from pathlib import Path

from ..api import SkbClient
from ..exceptions import FileNotFoundLocallyError
from ..models import TrackedFile
from ..utils import set_local_mtime

logger = logging.getLogger(__name__)


def _file_mode(path: Path) -> int:
    """Permission bits for a downloaded file: kept if it exists, umask default if new."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


class SyncOperations:
    """Side-effecting operations applied for a sync decision."""

    def __init__(self, client: SkbClient):
        """Initialize sync operations.

        Args:
            client: SKB API client
        """
        self.client = client

    def register_file(self, path: str) -> TrackedFile:
        """Create a server record for a local file and upload its content.

        Args:
            path: Local path, recorded on the server exactly as given

        Returns:
            The new tracked file

        Raises:
            FileNotFoundLocallyError: If the local file cannot be read
        """
        file_id = self.client.create_file(path)
        logger.debug("Server assigned id %s to %s", file_id, path)
        try:
            last_modified = self.client.upload_new_file(file_id, Path(path))
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            raise FileNotFoundLocallyError(path) from e
        return TrackedFile(id=file_id, path=path, last_modified=last_modified)

    def upload_file(self, remote: TrackedFile) -> TrackedFile:
        """Replace the server version of a tracked file with the local file.

        Returns:
            The tracked file with the modification time that was sent

        Raises:
            FileNotFoundLocallyError: If the local file cannot be read
        """
        try:
            last_modified = self.client.update_file(remote.id, Path(remote.path))
        except OSError as e:
            logger.debug("Cannot read %s: %s", remote.path, e)
            raise FileNotFoundLocallyError(remote.path) from e
        return TrackedFile(id=remote.id, path=remote.path, last_modified=last_modified)

    def download_file(self, remote: TrackedFile) -> int:
        """Overwrite the local file with the server version.

        The content is written to a temporary file next to the target and
        moved over it in one step, so an interrupted write never leaves a
        truncated file behind. The local modification time is set to the
        value reported by the server, falling back to the snapshot's
        timestamp when the response carries none.

        Returns:
            The modification time applied to the local file
        """
        content, last_modified = self.client.download_file(remote.id)
        if last_modified is None:
            logger.debug(
                "No Last-Modified header for %s, using snapshot time", remote.path
            )
            last_modified = remote.last_modified

        local_path = Path(remote.path)
        # Ensure parent directory exists
        local_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Replacing %s with data gotten from server", remote.path)
        fd, temp_name = tempfile.mkstemp(
            dir=local_path.parent, prefix=f".{local_path.name}.", suffix=".part"
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.chmod(temp_path, _file_mode(local_path))
            set_local_mtime(temp_path, last_modified)
            os.replace(temp_path, local_path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        return last_modified

    def delete_remote(self, remote: TrackedFile) -> None:
        """Delete the server record. The local file is never touched."""
        self.client.delete_file(remote.id)
