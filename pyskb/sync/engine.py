"""Core sync engine for executing sync operations."""

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

from ..api import SkbClient
from ..exceptions import (
    AlreadyTrackedError,
    FileNotFoundLocallyError,
    LocalVersionIsNewerError,
    NotTrackedRemotelyError,
    ServerNotFoundError,
    ServerVersionIsNewerError,
)
from ..models import BackupCode, DiscoveredServer, InfoSnapshot, TrackedFile
from ..output import OutputFormatter
from .comparator import (
    FileComparator,
    FileStatus,
    SyncDecision,
    SyncDirection,
    SyncVerdict,
)
from .operations import SyncOperations
from .scanner import LocalFileState

logger = logging.getLogger(__name__)

LocalStateReader = Callable[[str], LocalFileState]

PRECONDITION_ERRORS = {
    SyncVerdict.NOT_FOUND_LOCALLY: FileNotFoundLocallyError,
    SyncVerdict.NOT_TRACKED_REMOTELY: NotTrackedRemotelyError,
    SyncVerdict.ALREADY_TRACKED: AlreadyTrackedError,
}

CONFLICT_ERRORS = {
    SyncVerdict.CONFLICT_SERVER_NEWER: ServerVersionIsNewerError,
    SyncVerdict.CONFLICT_LOCAL_NEWER: LocalVersionIsNewerError,
}


class SyncEngine:
    """Drives the comparator over tracked files and applies its decisions.

    Every command fetches one fresh snapshot from the server; local state
    is read fresh for every file. Files are processed strictly one after
    another, and the first failing transfer aborts the whole sweep.
    """

    def __init__(
        self,
        client: SkbClient,
        output: Optional[OutputFormatter] = None,
        local_state: Optional[LocalStateReader] = None,
        operations: Optional[SyncOperations] = None,
    ):
        """Initialize sync engine.

        Args:
            client: SKB API client (source of the remote snapshot)
            output: Output formatter for displaying progress/status
            local_state: Callable reading the local state of a path
            operations: Operations used to apply decisions
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.local_state = local_state or LocalFileState.from_path
        self.operations = operations or SyncOperations(client)
        self.comparator = FileComparator()

    def fetch_snapshot(self) -> InfoSnapshot:
        """Fetch the remote state snapshot."""
        snapshot = self.client.get_info()
        logger.debug("Got information from server: %d file(s)", len(snapshot.files))
        return snapshot

    # =========================
    # Full sync
    # =========================

    def sync_all(self, dry_run: bool = False) -> dict:
        """Sync every tracked file to the newest version (both directions).

        Args:
            dry_run: If True, only compute and show what would be done

        Returns:
            Dictionary with sync statistics

        Raises:
            SkbError: On the first failed transfer; later files are not processed
        """
        snapshot = self.fetch_snapshot()
        stats = {"uploads": 0, "downloads": 0, "skips": 0}

        if dry_run:
            self.output.info("Dry run: No changes will be made")

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.output.console,
            transient=True,
            disable=self.output.quiet or self.output.json_output,
        ) as progress:
            task = progress.add_task("Syncing files...", total=len(snapshot.files))

            for tracked in snapshot.files:
                local = self.local_state(tracked.path)
                decision = self.comparator.compare(SyncDirection.SYNC, local, tracked)
                self._apply_sync_decision(decision, stats, dry_run)
                progress.update(task, advance=1)

        if not dry_run:
            self.output.success("Updated every file")
        return stats

    def _apply_sync_decision(
        self, decision: SyncDecision, stats: dict, dry_run: bool
    ) -> None:
        """Apply one generic sync decision."""
        remote = decision.remote
        if not decision.verdict.requires_action or remote is None:
            logger.info("%s already up to date", decision.path)
            stats["skips"] += 1
            return

        action_start = time.time()
        if decision.verdict == SyncVerdict.UPLOAD_NEEDED:
            if dry_run:
                self.output.info(f"WOULD UPLOAD: {decision.path}")
            else:
                try:
                    self.operations.upload_file(remote)
                except Exception:
                    logger.error("Could not update file on server: %s", decision.path)
                    raise
                self.output.info(f"UPLOADED: {decision.path}")
            stats["uploads"] += 1

        elif decision.verdict == SyncVerdict.DOWNLOAD_NEEDED:
            if dry_run:
                self.output.info(f"WOULD DOWNLOAD: {decision.path}")
            else:
                try:
                    self.operations.download_file(remote)
                except Exception:
                    logger.error("Could not download file from server: %s", decision.path)
                    raise
                self.output.info(f"DOWNLOADED: {decision.path}")
            stats["downloads"] += 1

        logger.debug(
            "%s of %s took %.2fs",
            decision.verdict.value,
            decision.path,
            time.time() - action_start,
        )

    # =========================
    # Single file operations
    # =========================

    def _check_decision(self, decision: SyncDecision) -> SyncDecision:
        """Raise the matching error for refused decisions."""
        verdict = decision.verdict
        if verdict.is_precondition_failure:
            error = PRECONDITION_ERRORS[verdict](decision.path)
            logger.warning("%s", error)
            raise error
        if verdict.is_conflict:
            raise CONFLICT_ERRORS[verdict](decision.path)
        return decision

    def _decide(
        self,
        direction: SyncDirection,
        path: str,
        force: bool = False,
        require_local: bool = False,
    ) -> SyncDecision:
        """Read local state, fetch one snapshot and decide for a single file."""
        local = self.local_state(path)
        if require_local and not local.exists:
            # Checked before contacting the server
            return self._check_decision(
                self.comparator.compare(direction, local, None, force)
            )
        snapshot = self.fetch_snapshot()
        remote = snapshot.find_file(path)
        decision = self.comparator.compare(direction, local, remote, force)
        logger.debug("%s %s: %s (%s)", direction.value, path, decision.verdict.value, decision.reason)
        return self._check_decision(decision)

    def add_file(self, path: str) -> SyncDecision:
        """Register a new local file on the server and upload it.

        Raises:
            FileNotFoundLocallyError: If the local file does not exist
            AlreadyTrackedError: If the path is already tracked
        """
        decision = self._decide(SyncDirection.ADD, path, require_local=True)
        try:
            tracked = self.operations.register_file(path)
        except Exception:
            logger.error("Could not create and upload file %s on server", path)
            raise
        return replace(decision, remote=tracked)

    def update_file(self, path: str, force: bool = False) -> SyncDecision:
        """Push the local version of a tracked file to the server.

        Raises:
            FileNotFoundLocallyError: If the local file does not exist
            NotTrackedRemotelyError: If the path is not tracked
            ServerVersionIsNewerError: If the server is newer and not forced
        """
        decision = self._decide(
            SyncDirection.UPDATE, path, force=force, require_local=True
        )
        if decision.verdict == SyncVerdict.UPLOAD_NEEDED and decision.remote:
            try:
                tracked = self.operations.upload_file(decision.remote)
            except Exception:
                logger.error("Could not update file on server: %s", path)
                raise
            return replace(decision, remote=tracked)
        return decision

    def download_file(self, path: str, force: bool = False) -> SyncDecision:
        """Replace the local file with the server version.

        Raises:
            NotTrackedRemotelyError: If the path is not tracked
            LocalVersionIsNewerError: If the local file is newer and not forced
        """
        decision = self._decide(SyncDirection.DOWNLOAD, path, force=force)
        if decision.verdict == SyncVerdict.DOWNLOAD_NEEDED and decision.remote:
            try:
                self.operations.download_file(decision.remote)
            except Exception:
                logger.error("Could not download file from server: %s", path)
                raise
        return decision

    def delete_file(self, path: str) -> SyncDecision:
        """Delete a tracked file on the server; the local file is kept.

        Raises:
            NotTrackedRemotelyError: If the path is not tracked
        """
        decision = self._decide(SyncDirection.DELETE, path)
        if decision.verdict == SyncVerdict.DELETE_REMOTE and decision.remote:
            try:
                self.operations.delete_remote(decision.remote)
            except Exception:
                logger.error("Could not delete file from server: %s", path)
                raise
        return decision

    def list_files(self) -> list[tuple[TrackedFile, FileStatus]]:
        """Status of every tracked file compared to its local counterpart."""
        snapshot = self.fetch_snapshot()
        return [
            (tracked, self.comparator.file_status(self.local_state(tracked.path), tracked))
            for tracked in snapshot.files
        ]

    # =========================
    # Server operations
    # =========================

    def server_status(self) -> InfoSnapshot:
        """Storage usage and connected servers, as seen by the server."""
        return self.fetch_snapshot()

    def discover_servers(self, depth: Optional[int] = None) -> list[DiscoveredServer]:
        """Discover servers reachable from the connected servers."""
        return self.client.get_servers(depth)

    def verify_server(self, hostname: str) -> Optional[BackupCode]:
        """Confirm a remote server that asked to connect.

        Returns:
            The backup code, or None if the server is already verified

        Raises:
            ServerNotFoundError: If the hostname is not known
        """
        server = self.fetch_snapshot().find_server(hostname)
        if server is None:
            logger.warning("Server hostname %s is not known", hostname)
            raise ServerNotFoundError(hostname)
        if server.is_verified:
            return None
        return self.client.accept_server(hostname)

    def add_server(self, hostname: str) -> Optional[BackupCode]:
        """Add a new remote server.

        Returns:
            The backup code, or None if the server is already added
        """
        if self.fetch_snapshot().find_server(hostname) is not None:
            return None
        return self.client.add_server(hostname)

    def delete_server(self, hostname: str) -> None:
        """Delete a connected server, including blocks saved on it.

        Raises:
            ServerNotFoundError: If the hostname is not known
        """
        if self.fetch_snapshot().find_server(hostname) is None:
            logger.warning("Server hostname %s is not known", hostname)
            raise ServerNotFoundError(hostname)
        self.client.delete_server(hostname)
