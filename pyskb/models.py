"""Data models for SKB API responses."""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from .exceptions import SkbInvalidResponseError, SkbInvalidStateError

logger = logging.getLogger(__name__)


def _require(data: dict[str, Any], key: str, kind: str) -> Any:
    """Get a required field from an API response dict."""
    if not isinstance(data, dict):
        raise SkbInvalidResponseError(f"Invalid {kind} record: expected an object")
    if key not in data:
        raise SkbInvalidResponseError(f"Missing field '{key}' in {kind} response")
    return data[key]


@dataclass(frozen=True)
class TrackedFile:
    """A file registered on the backup server."""

    id: str
    """Opaque identifier assigned by the server"""

    path: str
    """Local path as recorded on the server (the synchronization key)"""

    last_modified: int
    """Server-side modification time (unix seconds)"""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "TrackedFile":
        try:
            return cls(
                id=str(_require(data, "id", "file")),
                path=str(_require(data, "path", "file")),
                last_modified=int(_require(data, "last_modified", "file")),
            )
        except (TypeError, ValueError) as e:
            raise SkbInvalidResponseError(f"Invalid file record: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ServerState(str, Enum):
    """Verification state of a connected remote server."""

    CONNECTED = "connected"
    """Verified on our side and confirmed by the remote server"""

    AWAITING_REMOTE = "awaiting_remote"
    """Verified on our side, waiting for the remote server to confirm"""

    AWAITING_CONFIRMATION = "awaiting_confirmation"
    """Remote server confirmed, waiting for our confirmation"""

    @classmethod
    def from_flags(cls, is_verified: bool, is_confirmed: bool) -> "ServerState":
        """Derive the state from the two server flags.

        Raises:
            SkbInvalidStateError: If both flags are false
        """
        if is_verified and is_confirmed:
            return cls.CONNECTED
        if is_verified:
            return cls.AWAITING_REMOTE
        if is_confirmed:
            return cls.AWAITING_CONFIRMATION
        raise SkbInvalidStateError("both is_verified and is_confirmed are false")


@dataclass(frozen=True)
class ServerInfo:
    """A remote server connected to the backup server."""

    hostname: str
    owner: str
    block_size: int
    free_blocks: int
    used_blocks: int
    healthcheck_percent: int
    healthcheck_interval: int
    is_verified: bool
    is_confirmed: bool
    healthy: bool
    old_hostnames: list[str] = field(default_factory=list)

    @property
    def state(self) -> ServerState:
        return ServerState.from_flags(self.is_verified, self.is_confirmed)

    @property
    def free_bytes(self) -> int:
        return self.block_size * self.free_blocks

    @property
    def used_bytes(self) -> int:
        return self.block_size * self.used_blocks

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ServerInfo":
        """Create a ServerInfo from API data.

        Raises:
            SkbInvalidStateError: If the server is neither verified nor confirmed
            SkbInvalidResponseError: If required fields are missing
        """
        hostname = str(_require(data, "hostname", "server"))
        is_verified = bool(data.get("is_verified", False))
        is_confirmed = bool(data.get("is_confirmed", False))
        if not is_verified and not is_confirmed:
            raise SkbInvalidStateError(
                f"Got illegal state for server {hostname}, "
                "both is_verified and is_confirmed are false"
            )

        try:
            return cls(
                hostname=hostname,
                owner=str(data.get("owner", "")),
                block_size=int(data.get("block_size", 0)),
                free_blocks=int(data.get("free_blocks", 0)),
                used_blocks=int(data.get("used_blocks", 0)),
                healthcheck_percent=int(data.get("healthcheck_percent", 0)),
                healthcheck_interval=int(data.get("healthcheck_interval", 0)),
                is_verified=is_verified,
                is_confirmed=is_confirmed,
                healthy=bool(data.get("healthy", False)),
                old_hostnames=list(data.get("old_hostnames") or []),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise SkbInvalidResponseError(
                f"Invalid server record for {hostname}: {e}"
            ) from e

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["state"] = self.state.value
        return result


@dataclass(frozen=True)
class InfoSnapshot:
    """Full listing of tracked files and server registry state.

    Fetched once per command and used as the sole source of truth.
    """

    total_usage_size: int
    used_data: int
    data_unsecured: int
    data_secured: int
    data_safely_secured: int
    servers: list[ServerInfo] = field(default_factory=list)
    files: list[TrackedFile] = field(default_factory=list)

    @property
    def free_data(self) -> int:
        return self.total_usage_size - self.used_data

    def find_file(self, path: str) -> Optional[TrackedFile]:
        """Find the tracked file recorded under exactly this path."""
        for tracked in self.files:
            if tracked.path == path:
                return tracked
        return None

    def find_server(self, hostname: str) -> Optional[ServerInfo]:
        """Find a connected server by hostname."""
        for server in self.servers:
            if server.hostname == hostname:
                return server
        return None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "InfoSnapshot":
        """Parse the ``GET info/`` response.

        Server records in an illegal state are logged and skipped.

        Raises:
            SkbInvalidResponseError: If fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise SkbInvalidResponseError("Info response is not a JSON object")

        server_list = _require(data, "servers", "info")
        file_list = _require(data, "files", "info")
        if not isinstance(server_list, list) or not isinstance(file_list, list):
            raise SkbInvalidResponseError("Info response servers/files are not lists")

        servers = []
        for server_data in server_list:
            try:
                servers.append(ServerInfo.from_api_response(server_data))
            except SkbInvalidStateError as e:
                logger.warning("%s", e)

        files = [TrackedFile.from_api_response(f) for f in file_list]

        try:
            return cls(
                total_usage_size=int(_require(data, "total_usage_size", "info")),
                used_data=int(_require(data, "used_data", "info")),
                data_unsecured=int(_require(data, "data_unsecured", "info")),
                data_secured=int(_require(data, "data_secured", "info")),
                data_safely_secured=int(
                    _require(data, "data_safely_secured", "info")
                ),
                servers=servers,
                files=files,
            )
        except (TypeError, ValueError) as e:
            raise SkbInvalidResponseError(f"Invalid usage data in info response: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_usage_size": self.total_usage_size,
            "used_data": self.used_data,
            "data_unsecured": self.data_unsecured,
            "data_secured": self.data_secured,
            "data_safely_secured": self.data_safely_secured,
            "servers": [s.to_dict() for s in self.servers],
            "files": [f.to_dict() for f in self.files],
        }


@dataclass(frozen=True)
class DiscoveredServer:
    """A server found by discovery that is not yet connected."""

    hostname: str
    owner: str
    block_size: int
    free_blocks: int
    healthcheck_percent: int
    healthcheck_interval: int
    hash_methods: list[str] = field(default_factory=list)

    @property
    def free_bytes(self) -> int:
        return self.block_size * self.free_blocks

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DiscoveredServer":
        hostname = str(_require(data, "hostname", "server"))
        try:
            return cls(
                hostname=hostname,
                owner=str(data.get("owner", "")),
                block_size=int(data.get("block_size", 0)),
                free_blocks=int(data.get("free_blocks", 0)),
                healthcheck_percent=int(data.get("healthcheck_percent", 0)),
                healthcheck_interval=int(data.get("healthcheck_interval", 0)),
                hash_methods=list(data.get("hash_methods") or []),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise SkbInvalidResponseError(
                f"Invalid discovered server record for {hostname}: {e}"
            ) from e

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BackupCode:
    """Backup code returned when a server connection is created or accepted."""

    backup_code: str

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "BackupCode":
        return cls(backup_code=str(_require(data, "backup_code", "server")))
