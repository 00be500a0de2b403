"""PySKB - Keep local files in sync with an SKB backup server."""

from .api import SkbClient
from .auth import Authenticator, SignedEnvelope, generate_nonce
from .config import Config, load_config
from .exceptions import (
    AlreadyTrackedError,
    ConflictError,
    FileNotFoundLocallyError,
    LocalVersionIsNewerError,
    NotTrackedRemotelyError,
    PreconditionError,
    ServerNotFoundError,
    ServerVersionIsNewerError,
    SkbAPIError,
    SkbAuthenticationError,
    SkbConfigError,
    SkbError,
    SkbInvalidResponseError,
    SkbNetworkError,
    SkbNotFoundError,
    SkbSigningError,
    SkbSyncError,
)
from .models import InfoSnapshot, ServerInfo, ServerState, TrackedFile

__version__ = "0.1.0"

__all__ = [
    "SkbClient",
    "Authenticator",
    "SignedEnvelope",
    "generate_nonce",
    "Config",
    "load_config",
    "InfoSnapshot",
    "ServerInfo",
    "ServerState",
    "TrackedFile",
    "SkbError",
    "SkbAPIError",
    "SkbAuthenticationError",
    "SkbConfigError",
    "SkbInvalidResponseError",
    "SkbNetworkError",
    "SkbNotFoundError",
    "SkbSigningError",
    "SkbSyncError",
    "PreconditionError",
    "ConflictError",
    "FileNotFoundLocallyError",
    "NotTrackedRemotelyError",
    "AlreadyTrackedError",
    "ServerNotFoundError",
    "ServerVersionIsNewerError",
    "LocalVersionIsNewerError",
]
