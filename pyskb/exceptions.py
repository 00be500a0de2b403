"""Custom exceptions for the SKB client."""


class SkbError(Exception):
    """Base exception for all SKB client errors."""

    pass


class SkbConfigError(SkbError):
    """Configuration or identity material could not be loaded."""

    pass


class SkbSigningError(SkbError):
    """A request body could not be signed."""

    pass


class SkbAPIError(SkbError):
    """Base exception for SKB API and transport errors."""

    pass


class SkbAuthenticationError(SkbAPIError):
    """Server rejected the request signature."""

    pass


class SkbPermissionError(SkbAPIError):
    """Access to the resource is forbidden."""

    pass


class SkbNotFoundError(SkbAPIError):
    """Resource was not found on the server."""

    pass


class SkbConflictError(SkbAPIError):
    """Server reported a conflicting resource state."""

    pass


class SkbNetworkError(SkbAPIError):
    """Network or connection failure."""

    pass


class SkbInvalidResponseError(SkbAPIError):
    """Server returned a response that could not be interpreted."""

    pass


class SkbInvalidStateError(ValueError):
    """A record returned by the server is in an impossible state."""

    pass


class SkbSyncError(SkbError):
    """Base exception for refused synchronization operations."""

    pass


class PreconditionError(SkbSyncError):
    """An operation's precondition failed before any mutating call."""

    pass


class FileNotFoundLocallyError(PreconditionError):
    """Local file does not exist or is a directory."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File {path} was not found or is a directory")


class NotTrackedRemotelyError(PreconditionError):
    """File is not saved on the server."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File {path} is not synced on server")


class AlreadyTrackedError(PreconditionError):
    """File is already saved on the server."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File {path} is already synced on server")


class ServerNotFoundError(PreconditionError):
    """Remote server hostname is not known to the backup server."""

    def __init__(self, hostname: str):
        self.hostname = hostname
        super().__init__(f"Server {hostname} is not known")


class ConflictError(SkbSyncError):
    """Refusal to overwrite newer data without a force override."""

    pass


class ServerVersionIsNewerError(ConflictError):
    """File version on the server is newer than the local file."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"File {path} is newer on server. Force update with -f flag"
        )


class LocalVersionIsNewerError(ConflictError):
    """Local file version is newer than the server version."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Local file {path} is newer. Force download with -f flag")
