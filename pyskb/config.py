"""Configuration loading for the SKB client.

The client needs two pieces of material for every run: ``config.json``
with the API base URL and ``private.pem`` with the RSA key used to sign
requests. Both are loaded once at startup into an immutable :class:`Config`
which is then passed to every component that needs it.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from cryptography.hazmat.primitives.asymmetric import rsa

from .auth import load_private_key, private_key_pem, public_key_pem
from .exceptions import SkbConfigError
from .utils import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
PRIVATE_KEY_FILE_NAME = "private.pem"
PUBLIC_KEY_FILE_NAME = "public.pem"

CONFIG_ENV_VAR = "SKB_CONFIG"
PRIVATE_KEY_ENV_VAR = "SKB_PRIVATE_KEY"


def get_config_dir() -> Path:
    """Get the per-user configuration directory (~/.config/pyskb)."""
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / "pyskb"
    return Path.home() / ".config" / "pyskb"


def find_file(
    name: str, explicit: Optional[Path] = None, env_var: Optional[str] = None
) -> Path:
    """Locate a configuration file.

    Lookup order: explicit path, environment variable, the user config
    directory, the current working directory.

    Raises:
        SkbConfigError: If the file cannot be found
    """
    if explicit is not None:
        if not explicit.is_file():
            raise SkbConfigError(f"File {explicit} doesn't exist")
        return explicit

    if env_var and os.environ.get(env_var):
        env_path = Path(os.environ[env_var])
        if not env_path.is_file():
            raise SkbConfigError(
                f"File {env_path} from ${env_var} doesn't exist"
            )
        return env_path

    candidates = [get_config_dir() / name, Path.cwd() / name]
    for candidate in candidates:
        if candidate.is_file():
            logger.info("Found %s", candidate)
            return candidate

    checked = " and ".join(str(c) for c in candidates)
    raise SkbConfigError(f"File {name} doesn't exist. Checked {checked}")


def read_api_url(path: Path) -> str:
    """Read and validate the API URL from a JSON config file."""
    logger.debug("Reading JSON config file %s", path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SkbConfigError(f"Could not read config file {path}: {e}") from e

    url = data.get("url") if isinstance(data, dict) else None
    if not url or not isinstance(url, str):
        raise SkbConfigError(f"Config file {path} has no 'url' entry")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise SkbConfigError(f"Invalid API URL in {path}: {url}")
    return url


@dataclass(frozen=True)
class Config:
    """Immutable values needed throughout a process run."""

    api_url: str
    """Base URL of the client API, e.g. https://host/api/client/v1/"""

    private_key: rsa.RSAPrivateKey
    """Key used to sign every request"""

    allow_unsafe: bool = False
    """Accept self-signed TLS certificates"""

    timeout: float = DEFAULT_TIMEOUT
    """Request timeout in seconds"""

    @property
    def server_display(self) -> str:
        """scheme://host[:port] of the API URL."""
        parsed = urlparse(self.api_url)
        return f"{parsed.scheme}://{parsed.netloc}"


def load_config(
    config_path: Optional[Path] = None,
    key_path: Optional[Path] = None,
    allow_unsafe: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
) -> Config:
    """Load the configuration and the private key.

    Args:
        config_path: Explicit config.json path (optional)
        key_path: Explicit private key path (optional)
        allow_unsafe: Accept invalid TLS certificates
        timeout: Request timeout in seconds

    Returns:
        Config instance

    Raises:
        SkbConfigError: If anything cannot be found or parsed
    """
    api_url = read_api_url(find_file(CONFIG_FILE_NAME, config_path, CONFIG_ENV_VAR))
    private_key = load_private_key(
        find_file(PRIVATE_KEY_FILE_NAME, key_path, PRIVATE_KEY_ENV_VAR)
    )
    return Config(
        api_url=api_url,
        private_key=private_key,
        allow_unsafe=allow_unsafe,
        timeout=timeout,
    )


def write_config(
    directory: Path, api_url: str, private_key: rsa.RSAPrivateKey
) -> dict[str, Path]:
    """Write config.json and the key pair into a directory.

    Args:
        directory: Target directory (created if missing)
        api_url: API base URL to store
        private_key: Key whose private and public halves are written

    Returns:
        Mapping of "config", "private_key", "public_key" to written paths
    """
    directory.mkdir(parents=True, exist_ok=True)

    config_file = directory / CONFIG_FILE_NAME
    config_file.write_text(json.dumps({"url": api_url}, indent=2), encoding="utf-8")

    private_file = directory / PRIVATE_KEY_FILE_NAME
    private_file.write_bytes(private_key_pem(private_key))
    try:
        private_file.chmod(0o600)
    except OSError as e:
        logger.warning("Could not restrict permissions of %s: %s", private_file, e)

    public_file = directory / PUBLIC_KEY_FILE_NAME
    public_file.write_bytes(public_key_pem(private_key))

    return {
        "config": config_file,
        "private_key": private_file,
        "public_key": public_file,
    }
