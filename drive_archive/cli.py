"""CLI interface for drive-archive."""

import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich.progress import Progress, SpinnerColumn, TextColumn

from .api import DriveClient
from .archive import ArchiveEngine, reserve_folder_paths, unique_path
from .auth import load_credentials
from .config import config
from .exceptions import DriveArchiveError
from .formats import DEFAULT_FORMAT_POLICY
from .models import Record
from .output import OutputFormatter
from .tree import build_tree

logger = logging.getLogger(__name__)


def _create_client(
    ctx: Any,
    auth_file: Optional[str],
    user: Optional[str],
    initial_backoff: float,
    max_tries: int,
) -> DriveClient:
    """Create an authenticated client, exiting if credentials are missing."""
    out: OutputFormatter = ctx.obj["out"]

    auth_file = auth_file or config.auth_file
    user = user or config.user
    if not auth_file:
        out.error("--auth-file must be set")
        ctx.exit(1)
    if not user:
        out.error("--user must be set")
        ctx.exit(1)

    credentials = load_credentials(auth_file, user)
    return DriveClient(
        credentials=credentials, initial_delay=initial_backoff, max_tries=max_tries
    )


def _list_account(
    client: DriveClient, root_id: Optional[str], out: OutputFormatter
) -> tuple[str, list[Record]]:
    """Resolve the root id (unless given) and list every record."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        disable=out.quiet or out.json_output,
    ) as progress:
        task = progress.add_task("Resolving root folder...", total=None)
        if not root_id:
            root_id = client.get_root_id()
        progress.update(task, description="Listing files...")
        records = client.list_records()

    out.info(f"found {len(records)} total files")
    return root_id, records


def auth_options(func: Any) -> Any:
    """Options shared by all commands that talk to Drive."""
    options = [
        click.option(
            "--auth-file",
            "-a",
            envvar="DRIVE_ARCHIVE_AUTH_FILE",
            type=click.Path(dir_okay=False),
            help="Path to service account JSON file",
        ),
        click.option(
            "--user",
            "-u",
            envvar="DRIVE_ARCHIVE_USER",
            help="Email of user to download Google Drive files for",
        ),
        click.option(
            "--root-id",
            default=None,
            help="Id of the root folder (default: the user's My Drive)",
        ),
        click.option(
            "--initial-backoff",
            type=float,
            default=lambda: config.initial_backoff,
            show_default="1.0",
            help="Initial retry delay in seconds",
        ),
        click.option(
            "--max-tries",
            type=int,
            default=lambda: config.max_tries,
            show_default="8",
            help="Attempts per request (1 disables retries, 0 retries forever)",
        ),
        click.option(
            "--no-orphaned",
            is_flag=True,
            help="Skip files that are not under My Drive (e.g. shared with me)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="drive-archive")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """drive-archive - Mirror a Google Drive account to a local directory."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("drive_archive").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@auth_options
@click.option(
    "--out",
    "-o",
    "output",
    required=True,
    type=click.Path(file_okay=False),
    help="Path to output files to. Will be created if it doesn't already exist",
)
@click.option(
    "--workers",
    "-w",
    type=int,
    default=lambda: config.workers,
    show_default="CPU count",
    help="Number of parallel downloads (0 uses the CPU count)",
)
@click.pass_context
def archive(
    ctx: Any,
    auth_file: Optional[str],
    user: Optional[str],
    root_id: Optional[str],
    initial_backoff: float,
    max_tries: int,
    no_orphaned: bool,
    output: str,
    workers: int,
) -> None:
    """Download every file of a Google Drive account.

    Google Docs, Sheets, Slides and Drawings are converted to Office/SVG
    formats. Files that are already up to date locally are skipped, so the
    command can be re-run to refresh an archive.

    Examples:
        drive-archive archive -a key.json -u me@example.com -o ./backup
        drive-archive archive -a key.json -u me@example.com -o ./backup -w 16
    """
    out: OutputFormatter = ctx.obj["out"]

    output_dir = Path(output)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        out.error(f"could not create output directory: {e}")
        ctx.exit(1)

    try:
        client = _create_client(ctx, auth_file, user, initial_backoff, max_tries)
        with client:
            root_id, records = _list_account(client, root_id, out)

            engine = ArchiveEngine(
                client, out, initial_delay=initial_backoff, max_tries=max_tries
            )
            stats = engine.archive(
                root_id,
                records,
                output_dir,
                workers=workers,
                include_orphaned=not no_orphaned,
            )
    except DriveArchiveError as e:
        out.error(f"could not download files: {e}")
        ctx.exit(1)

    if out.json_output:
        out.print_json(stats)
    else:
        engine.display_summary(stats)
        out.success("done!")


@main.command()
@auth_options
@click.pass_context
def tree(
    ctx: Any,
    auth_file: Optional[str],
    user: Optional[str],
    root_id: Optional[str],
    initial_backoff: float,
    max_tries: int,
    no_orphaned: bool,
) -> None:
    """Show the local paths an archive would produce, without downloading.

    Examples:
        drive-archive tree -a key.json -u me@example.com
        drive-archive --json tree -a key.json -u me@example.com --no-orphaned
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _create_client(ctx, auth_file, user, initial_backoff, max_tries)
        with client:
            root_id, records = _list_account(client, root_id, out)
    except DriveArchiveError as e:
        out.error(f"could not list files: {e}")
        ctx.exit(1)

    main_root, orphaned = build_tree(root_id, records)
    roots = [main_root] if no_orphaned else [main_root, orphaned]

    entries: list[dict] = []
    for root in roots:
        used_paths: dict[str, int] = {}
        for path, node in root.iter_walk():
            if node.is_folder:
                kind = "folder"
                reserve_folder_paths(path, node, used_paths)
            elif node.is_shortcut:
                kind = "unresolved shortcut"
            else:
                kind = "file"
                path = unique_path(
                    path + DEFAULT_FORMAT_POLICY.extension(node.mime_type), used_paths
                )
            entries.append({"path": path, "id": node.id, "type": kind})

    if out.json_output:
        out.print_json(entries)
        return

    for entry in entries:
        suffix = "/" if entry["type"] == "folder" else ""
        marker = " (unresolved shortcut)" if entry["type"] == "unresolved shortcut" else ""
        out.print(f"{entry['path']}{suffix}{marker}")


if __name__ == "__main__":
    main()
