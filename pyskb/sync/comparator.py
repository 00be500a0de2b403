"""File comparison logic for sync operations.

Decisions are pure functions of the local state, the matched remote record
and the force flag. Nothing in this module touches the network or the
filesystem.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import TrackedFile
from .scanner import LocalFileState


class SyncDirection(str, Enum):
    """Which command a decision is computed for."""

    SYNC = "sync"
    """Generic bidirectional sync (full sweep)"""

    UPDATE = "update"
    """Push the local version to the server"""

    DOWNLOAD = "download"
    """Pull the server version to the local file"""

    ADD = "add"
    """Register a new file on the server"""

    DELETE = "delete"
    """Remove a file from the server"""


class SyncVerdict(str, Enum):
    """Outcome of comparing local and remote state for one file."""

    UPLOAD_NEEDED = "upload_needed"
    DOWNLOAD_NEEDED = "download_needed"
    DELETE_REMOTE = "delete_remote"
    UP_TO_DATE = "up_to_date"
    CONFLICT_SERVER_NEWER = "conflict_server_newer"
    CONFLICT_LOCAL_NEWER = "conflict_local_newer"
    NOT_FOUND_LOCALLY = "not_found_locally"
    NOT_TRACKED_REMOTELY = "not_tracked_remotely"
    ALREADY_TRACKED = "already_tracked"

    @property
    def requires_action(self) -> bool:
        """True if a mutating call has to be made."""
        return self in (
            SyncVerdict.UPLOAD_NEEDED,
            SyncVerdict.DOWNLOAD_NEEDED,
            SyncVerdict.DELETE_REMOTE,
        )

    @property
    def is_conflict(self) -> bool:
        return self in (
            SyncVerdict.CONFLICT_SERVER_NEWER,
            SyncVerdict.CONFLICT_LOCAL_NEWER,
        )

    @property
    def is_precondition_failure(self) -> bool:
        return self in (
            SyncVerdict.NOT_FOUND_LOCALLY,
            SyncVerdict.NOT_TRACKED_REMOTELY,
            SyncVerdict.ALREADY_TRACKED,
        )


class FileStatus(str, Enum):
    """Informational status of a tracked file, as shown by ``file list``."""

    UP_TO_DATE = "UP TO DATE"
    OUTDATED = "OUTDATED"
    """Local file is older than the server version"""

    NOT_SYNCED = "NOT SYNCED"
    """Local file is newer than the server version"""

    NOT_FOUND_LOCALLY = "NOT FOUND LOCALLY"


@dataclass(frozen=True)
class SyncDecision:
    """Represents a decision about how to sync a file."""

    verdict: SyncVerdict
    """Outcome of the comparison"""

    reason: str
    """Human-readable reason for this decision"""

    local: LocalFileState
    """Local file state"""

    remote: Optional[TrackedFile]
    """Matched remote record (if any)"""

    direction: SyncDirection = SyncDirection.SYNC
    """Command the decision was computed for"""

    @property
    def path(self) -> str:
        return self.local.path


def compare_timestamps(local_mtime: int, remote_mtime: int) -> int:
    """Compare two timestamps at whole-second granularity.

    Returns:
        -1 if local is older, 0 if equal, 1 if local is newer
    """
    local_seconds = int(local_mtime)
    remote_seconds = int(remote_mtime)
    if local_seconds < remote_seconds:
        return -1
    if local_seconds > remote_seconds:
        return 1
    return 0


class FileComparator:
    """Compares local and remote files to determine sync actions."""

    def compare(
        self,
        direction: SyncDirection,
        local: LocalFileState,
        remote: Optional[TrackedFile],
        force: bool = False,
    ) -> SyncDecision:
        """Determine the action for one file.

        Args:
            direction: Command to decide for
            local: Current local state of the file
            remote: Remote record matched by exact path (if any)
            force: Proceed despite the other side being newer

        Returns:
            SyncDecision for this file
        """
        if direction == SyncDirection.SYNC:
            return self._decide_sync(local, remote)
        if direction == SyncDirection.UPDATE:
            return self._decide_update(local, remote, force)
        if direction == SyncDirection.DOWNLOAD:
            return self._decide_download(local, remote, force)
        if direction == SyncDirection.ADD:
            return self._decide_add(local, remote)
        if direction == SyncDirection.DELETE:
            return self._decide_delete(local, remote)
        raise ValueError(f"Unknown sync direction: {direction}")

    def file_status(
        self, local: LocalFileState, remote: TrackedFile
    ) -> FileStatus:
        """Informational status of a tracked file (no action implied)."""
        if not local.exists or local.modified_at is None:
            return FileStatus.NOT_FOUND_LOCALLY

        order = compare_timestamps(local.modified_at, remote.last_modified)
        if order < 0:
            return FileStatus.OUTDATED
        if order > 0:
            return FileStatus.NOT_SYNCED
        return FileStatus.UP_TO_DATE

    def _decision(
        self,
        verdict: SyncVerdict,
        reason: str,
        local: LocalFileState,
        remote: Optional[TrackedFile],
        direction: SyncDirection,
    ) -> SyncDecision:
        return SyncDecision(
            verdict=verdict,
            reason=reason,
            local=local,
            remote=remote,
            direction=direction,
        )

    def _decide_sync(
        self, local: LocalFileState, remote: Optional[TrackedFile]
    ) -> SyncDecision:
        """Generic bidirectional sync: the newer side wins."""
        direction = SyncDirection.SYNC
        if remote is None:
            return self._decision(
                SyncVerdict.NOT_TRACKED_REMOTELY,
                "File is not synced on server",
                local,
                remote,
                direction,
            )

        # Server is the sole source of truth when the local file is absent
        if not local.exists or local.modified_at is None:
            return self._decision(
                SyncVerdict.DOWNLOAD_NEEDED,
                "File not found locally",
                local,
                remote,
                direction,
            )

        order = compare_timestamps(local.modified_at, remote.last_modified)
        if order > 0:
            return self._decision(
                SyncVerdict.UPLOAD_NEEDED,
                "Local file is newer",
                local,
                remote,
                direction,
            )
        if order < 0:
            return self._decision(
                SyncVerdict.DOWNLOAD_NEEDED,
                "Server file is newer",
                local,
                remote,
                direction,
            )
        return self._decision(
            SyncVerdict.UP_TO_DATE,
            "File is already up to date",
            local,
            remote,
            direction,
        )

    def _decide_update(
        self, local: LocalFileState, remote: Optional[TrackedFile], force: bool
    ) -> SyncDecision:
        """Push local to server; refuse to overwrite a newer server version."""
        direction = SyncDirection.UPDATE
        if not local.exists or local.modified_at is None:
            return self._decision(
                SyncVerdict.NOT_FOUND_LOCALLY,
                "File was not found or is a directory",
                local,
                remote,
                direction,
            )
        if remote is None:
            return self._decision(
                SyncVerdict.NOT_TRACKED_REMOTELY,
                "File is not synced on server",
                local,
                remote,
                direction,
            )

        order = compare_timestamps(local.modified_at, remote.last_modified)
        if order == 0:
            return self._decision(
                SyncVerdict.UP_TO_DATE,
                "File is already up to date",
                local,
                remote,
                direction,
            )
        if order < 0 and not force:
            return self._decision(
                SyncVerdict.CONFLICT_SERVER_NEWER,
                "File is newer on server. Force update with -f flag",
                local,
                remote,
                direction,
            )
        reason = (
            "Local file is newer" if order > 0 else "Forced update of newer server file"
        )
        return self._decision(
            SyncVerdict.UPLOAD_NEEDED, reason, local, remote, direction
        )

    def _decide_download(
        self, local: LocalFileState, remote: Optional[TrackedFile], force: bool
    ) -> SyncDecision:
        """Pull server to local; refuse to overwrite a newer local file."""
        direction = SyncDirection.DOWNLOAD
        if remote is None:
            return self._decision(
                SyncVerdict.NOT_TRACKED_REMOTELY,
                "File is not synced on server",
                local,
                remote,
                direction,
            )
        if not local.exists or local.modified_at is None:
            return self._decision(
                SyncVerdict.DOWNLOAD_NEEDED,
                "File not found locally",
                local,
                remote,
                direction,
            )

        order = compare_timestamps(local.modified_at, remote.last_modified)
        if order == 0:
            return self._decision(
                SyncVerdict.UP_TO_DATE,
                "File is already up to date",
                local,
                remote,
                direction,
            )
        if order > 0 and not force:
            return self._decision(
                SyncVerdict.CONFLICT_LOCAL_NEWER,
                "Local file is newer. Force download with -f flag",
                local,
                remote,
                direction,
            )
        reason = (
            "Server file is newer"
            if order < 0
            else "Forced download over newer local file"
        )
        return self._decision(
            SyncVerdict.DOWNLOAD_NEEDED, reason, local, remote, direction
        )

    def _decide_add(
        self, local: LocalFileState, remote: Optional[TrackedFile]
    ) -> SyncDecision:
        direction = SyncDirection.ADD
        if not local.exists:
            return self._decision(
                SyncVerdict.NOT_FOUND_LOCALLY,
                "File was not found or is a directory",
                local,
                remote,
                direction,
            )
        if remote is not None:
            return self._decision(
                SyncVerdict.ALREADY_TRACKED,
                "File is already synced on server",
                local,
                remote,
                direction,
            )
        return self._decision(
            SyncVerdict.UPLOAD_NEEDED,
            "New local file",
            local,
            remote,
            direction,
        )

    def _decide_delete(
        self, local: LocalFileState, remote: Optional[TrackedFile]
    ) -> SyncDecision:
        direction = SyncDirection.DELETE
        if remote is None:
            return self._decision(
                SyncVerdict.NOT_TRACKED_REMOTELY,
                "File is not synced on server",
                local,
                remote,
                direction,
            )
        return self._decision(
            SyncVerdict.DELETE_REMOTE,
            "Delete server copy (local file is kept)",
            local,
            remote,
            direction,
        )
