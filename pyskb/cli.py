"""CLI interface for the SKB backup client."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .api import SkbClient
from .auth import generate_key_pair, public_key_pem
from .config import CONFIG_FILE_NAME, get_config_dir, load_config, write_config
from .exceptions import SkbError
from .models import BackupCode, InfoSnapshot
from .output import OutputFormatter
from .sync import SyncEngine, SyncVerdict
from .utils import format_timestamp, percent_of

logger = logging.getLogger(__name__)

LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def _get_engine(ctx: Any) -> SyncEngine:
    """Load the configuration and build the sync engine once per invocation.

    Raises:
        SkbConfigError: If the configuration or the private key cannot be loaded
    """
    engine: Optional[SyncEngine] = ctx.obj.get("engine")
    if engine is not None:
        return engine

    config = load_config(
        config_path=ctx.obj.get("config_path"),
        key_path=ctx.obj.get("key_path"),
        allow_unsafe=ctx.obj.get("allow_unsafe", False),
    )
    logger.debug("Using backup server %s", config.server_display)
    client = SkbClient(config)
    ctx.call_on_close(client.close)

    engine = SyncEngine(client, output=ctx.obj["out"])
    ctx.obj["engine"] = engine
    return engine


def _fail(ctx: Any, out: OutputFormatter, error: Exception) -> None:
    out.error(str(error))
    ctx.exit(1)


@click.group()
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase logging output (-v for info, -vv for debug)",
)
@click.option(
    "--allow-unsafe",
    "-k",
    is_flag=True,
    help="Accept invalid (e.g. self-signed) TLS certificates",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to config.json (default: $SKB_CONFIG, ~/.config/pyskb, cwd)",
)
@click.option(
    "--key",
    "key_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to private.pem (default: $SKB_PRIVATE_KEY, ~/.config/pyskb, cwd)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: Any,
    verbose: int,
    allow_unsafe: bool,
    config_path: Optional[Path],
    key_path: Optional[Path],
    quiet: bool,
    json: bool,
) -> None:
    """PySKB - Keep local files in sync with an SKB backup server."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["config_path"] = config_path
    ctx.obj["key_path"] = key_path
    ctx.obj["allow_unsafe"] = allow_unsafe

    level = LOG_LEVELS.get(verbose, logging.DEBUG)
    if level == logging.DEBUG:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
    else:
        logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    logging.getLogger("pyskb").setLevel(level)

    if allow_unsafe:
        logger.warning("TLS certificate verification is disabled")


@main.command()
@click.option(
    "--url",
    prompt="Backup server API URL",
    help="Client API base URL, e.g. https://host/api/client/v1/",
)
@click.option(
    "--dir",
    "directory",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory to write the configuration to (default: ~/.config/pyskb)",
)
@click.option("--key-size", type=int, default=2048, show_default=True)
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing configuration")
@click.pass_context
def init(
    ctx: Any, url: str, directory: Optional[Path], key_size: int, force: bool
) -> None:
    """Initialize the client configuration.

    Writes config.json and a freshly generated RSA key pair. The public
    key has to be registered with the backup server before any command
    can authenticate.
    """
    out: OutputFormatter = ctx.obj["out"]
    directory = directory or get_config_dir()

    if (directory / CONFIG_FILE_NAME).exists() and not force:
        out.error(f"Configuration already exists in {directory}")
        out.info("Use --force to overwrite it")
        ctx.exit(1)

    try:
        out.info(f"Generating {key_size} bit RSA key pair...")
        private_key = generate_key_pair(key_size)
        paths = write_config(directory, url, private_key)
    except (SkbError, OSError, ValueError) as e:
        _fail(ctx, out, e)
        return

    public_pem = public_key_pem(private_key).decode("ascii")

    if out.json_output:
        out.output_json(
            {
                "url": url,
                **{name: str(path) for name, path in paths.items()},
                "public_key_pem": public_pem,
            }
        )
        return

    out.success("✓ Configuration written")
    out.print_summary(
        "Configuration",
        [
            ("API URL", url),
            ("Config", str(paths["config"])),
            ("Private key", str(paths["private_key"])),
            ("Public key", str(paths["public_key"])),
        ],
    )
    out.print("")
    out.info("Register this public key with the backup server:")
    out.print(public_pem)


def _print_servers(out: OutputFormatter, snapshot: InfoSnapshot) -> None:
    if not snapshot.servers:
        out.info("No servers connected")
        return

    rows = [
        {
            "hostname": server.hostname,
            "state": server.state.value,
            "owner": server.owner,
            "used": out.format_size(server.used_bytes),
            "free": out.format_size(server.free_bytes),
            "healthy": "yes" if server.healthy else "no",
        }
        for server in snapshot.servers
    ]
    out.output_table(
        rows,
        ["hostname", "state", "owner", "used", "free", "healthy"],
        {
            "hostname": "Hostname",
            "state": "State",
            "owner": "Owner",
            "used": "Used",
            "free": "Free",
            "healthy": "Healthy",
        },
        title="Servers",
    )


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show storage usage, connected servers and tracked files."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        snapshot = _get_engine(ctx).server_status()
    except SkbError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json(snapshot.to_dict())
        return

    total = snapshot.total_usage_size
    out.print_summary(
        "Storage",
        [
            ("Total", out.format_size(total)),
            (
                "Used",
                f"{out.format_size(snapshot.used_data)} "
                f"({percent_of(snapshot.used_data, total)}%)",
            ),
            ("Free", out.format_size(snapshot.free_data)),
            ("Unsecured", out.format_size(snapshot.data_unsecured)),
            ("Secured", out.format_size(snapshot.data_secured)),
            ("Safely secured", out.format_size(snapshot.data_safely_secured)),
            ("Tracked files", str(len(snapshot.files))),
        ],
    )
    out.print("")
    _print_servers(out, snapshot)

    if snapshot.files:
        out.output_table(
            [
                {
                    "path": tracked.path,
                    "last_modified": format_timestamp(tracked.last_modified),
                }
                for tracked in snapshot.files
            ],
            ["path", "last_modified"],
            {"path": "Path", "last_modified": "Last modified"},
            title="Files",
        )


# =========================
# Server commands
# =========================


@main.group()
@click.pass_context
def server(ctx: Any) -> None:
    """Manage remote servers holding the backups.

    Examples:
        skb server list                   # Show connected servers
        skb server discover --depth 2     # Find servers to connect to
        skb server new backup.example.org # Ask a server to connect
    """
    pass


@server.command("list")
@click.pass_context
def server_list(ctx: Any) -> None:
    """List connected servers and their verification state."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        snapshot = _get_engine(ctx).server_status()
    except SkbError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json([s.to_dict() for s in snapshot.servers])
        return
    _print_servers(out, snapshot)


@server.command("discover")
@click.option(
    "--depth",
    "-d",
    type=click.IntRange(min=0),
    default=None,
    help="How many hops to search from the connected servers",
)
@click.pass_context
def server_discover(ctx: Any, depth: Optional[int]) -> None:
    """Discover servers that are not connected yet."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        servers = _get_engine(ctx).discover_servers(depth)
    except SkbError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json([s.to_dict() for s in servers])
        return

    if not servers:
        out.info("No new servers found")
        return

    out.output_table(
        [
            {
                "hostname": s.hostname,
                "owner": s.owner,
                "free": out.format_size(s.free_bytes),
                "healthcheck": f"{s.healthcheck_percent}% / {s.healthcheck_interval}s",
                "hash_methods": ", ".join(s.hash_methods),
            }
            for s in servers
        ],
        ["hostname", "owner", "free", "healthcheck", "hash_methods"],
        {
            "hostname": "Hostname",
            "owner": "Owner",
            "free": "Free",
            "healthcheck": "Healthcheck",
            "hash_methods": "Hash methods",
        },
        title="Discovered servers",
    )


def _print_backup_code(out: OutputFormatter, hostname: str, code: BackupCode) -> None:
    if out.json_output:
        out.output_json({"hostname": hostname, "backup_code": code.backup_code})
        return
    out.info("Keep this backup code, it is needed to restore your data:")
    out.print(code.backup_code)


@server.command("verify")
@click.argument("hostname")
@click.pass_context
def server_verify(ctx: Any, hostname: str) -> None:
    """Confirm a server that asked to connect.

    HOSTNAME: Hostname of the remote server
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        code = _get_engine(ctx).verify_server(hostname)
    except SkbError as e:
        _fail(ctx, out, e)
        return

    if code is None:
        out.info(f"Server {hostname} is already verified")
        return
    out.success(f"✓ Verified server {hostname}")
    _print_backup_code(out, hostname, code)


@server.command("new")
@click.argument("hostname")
@click.pass_context
def server_new(ctx: Any, hostname: str) -> None:
    """Add a new server; it has to verify this client before it is used.

    HOSTNAME: Hostname of the remote server
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        code = _get_engine(ctx).add_server(hostname)
    except SkbError as e:
        _fail(ctx, out, e)
        return

    if code is None:
        out.info(f"Server {hostname} is already added")
        return
    out.success(f"✓ Added server {hostname}")
    _print_backup_code(out, hostname, code)


@server.command("delete")
@click.argument("hostname")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def server_delete(ctx: Any, hostname: str, yes: bool) -> None:
    """Delete a server, including the blocks saved on it.

    HOSTNAME: Hostname of the remote server
    """
    out: OutputFormatter = ctx.obj["out"]

    if (
        not yes
        and not out.quiet
        and not click.confirm(
            f"Are you sure you want to delete server {hostname} "
            "and every block saved on it?"
        )
    ):
        out.warning("Deletion cancelled.")
        return

    try:
        _get_engine(ctx).delete_server(hostname)
    except SkbError as e:
        _fail(ctx, out, e)
        return

    out.success(f"✓ Deleted server {hostname}")


# =========================
# File commands
# =========================


@main.group("file")
@click.pass_context
def file_group(ctx: Any) -> None:
    """Manage tracked files.

    Paths are matched exactly as typed: "docs/a.txt" and "./docs/a.txt"
    are different files for the server.

    Examples:
        skb file add notes.txt            # Start tracking a file
        skb file update -f notes.txt      # Overwrite a newer server copy
        skb file sync --dry-run           # Show what a sync would do
    """
    pass


@file_group.command("list")
@click.pass_context
def file_list(ctx: Any) -> None:
    """List tracked files and their state compared to the local copy."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        entries = _get_engine(ctx).list_files()
    except SkbError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json(
            [
                {**tracked.to_dict(), "status": file_status.value}
                for tracked, file_status in entries
            ]
        )
        return

    if not entries:
        out.info("No files tracked on server")
        return

    out.output_table(
        [
            {
                "path": tracked.path,
                "status": file_status.value,
                "last_modified": format_timestamp(tracked.last_modified),
            }
            for tracked, file_status in entries
        ],
        ["path", "status", "last_modified"],
        {"path": "Path", "status": "Status", "last_modified": "Server version"},
        title="Tracked files",
    )


@file_group.command("add")
@click.argument("path")
@click.pass_context
def file_add(ctx: Any, path: str) -> None:
    """Start tracking a local file and upload it.

    PATH: Local file path, recorded exactly as given
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        decision = _get_engine(ctx).add_file(path)
    except (SkbError, OSError) as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json(decision.remote.to_dict() if decision.remote else {})
        return
    out.success(f"✓ ADDED: {path}")


@file_group.command("update")
@click.argument("path")
@click.option(
    "--force", "-f", is_flag=True, help="Overwrite even if the server version is newer"
)
@click.pass_context
def file_update(ctx: Any, path: str, force: bool) -> None:
    """Upload the local version of a tracked file.

    PATH: Local file path, as recorded on the server
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        decision = _get_engine(ctx).update_file(path, force=force)
    except (SkbError, OSError) as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json({"path": path, "verdict": decision.verdict.value})
        return
    if decision.verdict == SyncVerdict.UP_TO_DATE:
        out.info(f"File {path} is already up to date")
    else:
        out.success(f"✓ UPDATED: {path}")


@file_group.command("download")
@click.argument("path")
@click.option(
    "--force", "-f", is_flag=True, help="Overwrite even if the local file is newer"
)
@click.pass_context
def file_download(ctx: Any, path: str, force: bool) -> None:
    """Replace the local file with the server version.

    PATH: Local file path, as recorded on the server
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        decision = _get_engine(ctx).download_file(path, force=force)
    except (SkbError, OSError) as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json({"path": path, "verdict": decision.verdict.value})
        return
    if decision.verdict == SyncVerdict.UP_TO_DATE:
        out.info(f"File {path} is already up to date")
    else:
        out.success(f"✓ DOWNLOADED: {path}")


@file_group.command("delete")
@click.argument("path")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def file_delete(ctx: Any, path: str, yes: bool) -> None:
    """Delete a file from the server. The local file is kept.

    PATH: Local file path, as recorded on the server
    """
    out: OutputFormatter = ctx.obj["out"]

    if (
        not yes
        and not out.quiet
        and not click.confirm(f"Are you sure you want to delete {path} from the server?")
    ):
        out.warning("Deletion cancelled.")
        return

    try:
        _get_engine(ctx).delete_file(path)
    except SkbError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json({"path": path, "deleted": True})
        return
    out.success(f"✓ Deleted {path} from server")


@file_group.command("sync")
@click.option(
    "--dry-run", is_flag=True, help="Show what would be done without transferring"
)
@click.pass_context
def file_sync(ctx: Any, dry_run: bool) -> None:
    """Sync every tracked file to its newest version.

    Newer local files are uploaded, newer or missing local files are
    downloaded. The first failed transfer stops the sync.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        stats = _get_engine(ctx).sync_all(dry_run=dry_run)
    except (SkbError, OSError) as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json({**stats, "dry_run": dry_run})
        return

    out.print_summary(
        "Sync summary" + (" (dry run)" if dry_run else ""),
        [
            ("Uploaded", str(stats["uploads"])),
            ("Downloaded", str(stats["downloads"])),
            ("Up to date", str(stats["skips"])),
        ],
    )


if __name__ == "__main__":
    main()
