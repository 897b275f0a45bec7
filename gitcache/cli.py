from __future__ import annotations

import logging
from typing import Mapping

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from gitcache.cache_service import (
    backup_cache,
    download_cache,
    remove_local_cache,
    remove_remote_cache,
    restore_cache,
)
from gitcache.config import RemoteSettings, load_cache_config, load_remote_settings
from gitcache.errors import (
    CollectionSetupError,
    ConfigError,
    ManifestMalformedError,
    ManifestMissingError,
    ManifestReadError,
    NoRecordsError,
    NoSourcesError,
    PackError,
    RemoteNotFoundError,
    StagingError,
    StagingExistsError,
    StagingMissingError,
    StagingRemoveError,
    TransportError,
    UnpackError,
    UnsupportedOsError,
)
from gitcache.models import OsType, SkippedSource
from gitcache.webdav import WebDavClient


app = typer.Typer(help="Cache CI directories and files on a WebDAV server.", add_completion=False)
console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_UNSUPPORTED_OS = 1
EXIT_USAGE = 2
EXIT_CONFIG = 3
EXIT_RMREMCACHE_FAILED = 4
EXIT_RMLOCALCACHE_FAILED = 5
EXIT_BACKUP_STAGING_EXISTS = 12
EXIT_BACKUP_NO_SOURCES = 13
EXIT_BACKUP_NO_RECORDS = 14
EXIT_BACKUP_REMOTE_SETUP = 15
EXIT_BACKUP_STAGING = 16
EXIT_BACKUP_PACK = 17
EXIT_BACKUP_UPLOAD = 18
EXIT_BACKUP_FAILED = 19
EXIT_DOWNLOAD_TRANSPORT = 22
EXIT_DOWNLOAD_UNPACK = 23
EXIT_DOWNLOAD_STAGING = 24
EXIT_DOWNLOAD_FAILED = 25
EXIT_RESTORE_NO_STAGING = 51
EXIT_RESTORE_NO_MANIFEST = 52
EXIT_RESTORE_MANIFEST_UNREADABLE = 53
EXIT_RESTORE_MANIFEST_MALFORMED = 55
EXIT_RESTORE_FAILED = 56
EXIT_RESTORE_CLEANUP = 57

FLAG_HELP = "/help"
FLAG_BACKUP = "/backup"
FLAG_DOWNLOAD = "/download"
FLAG_RESTORE = "/restore"
FLAG_RMLOCALCACHE = "/rmlocalcache"
FLAG_RMREMCACHE = "/rmremcache"

HELP_TEXT = """\
gitcache caches directories and files of a CI job on a WebDAV server and restores them later.

Required environment variables for /backup, /download and /rmremcache:
  WEBDAVUSER        user for WebDAV basic authentication (store it as a masked CI variable)
  WEBDAVPASS        password for WebDAV basic authentication; unauthenticated servers are not supported
  WEBDAVADDR        base address of the WebDAV store, e.g. https://example.com/dav
  CI_PROJECT_ID     unique project identifier, set by GitLab
  CI_COMMIT_BRANCH  branch name, set by GitLab (falls back to CI_MERGE_REQUEST_TARGET_BRANCH_NAME)

Optional:
  WEBDAVTIMEOUT         request timeout in seconds (default: wait indefinitely)
  GITCACHE_STAGING_DIR  local staging directory (default: ./.cache)

Selecting what to cache:
  cachepath_<name>=<path>  cache (and restore) a directory
  cachefile_<name>=<path>  cache (and restore) a single file
  Example: cachepath_homedir=/home/myuser

Operations:
  /backup        cache everything selected and upload it; not combinable with /download or /restore
  /help          show this text
  /download      download the archive and unpack it into the staging directory without restoring
  /restore       copy the staged items back into place, then delete the staging directory
  /rmlocalcache  delete the local staging directory
  /rmremcache    delete the archive for this project, OS and branch from the WebDAV server
"""


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("gitcache")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        handler = RichHandler(console=err_console, show_path=False, show_time=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)


def _build_client(remote: RemoteSettings) -> WebDavClient:
    return WebDavClient(remote, console=console)


def _render_path_summary(title: str, paths: list[str], style: str) -> None:
    if not paths:
        return
    console.print(Text(f"{title} ({len(paths)}):", style=style))
    for path in paths:
        console.print(f"  {path}")


def _render_skipped_sources(skipped: list[SkippedSource]) -> None:
    if not skipped:
        return

    table = Table(title="Skipped sources")
    table.add_column("Source")
    table.add_column("Kind")
    table.add_column("Reason")

    for item in skipped:
        table.add_row(item.raw, item.kind.value, item.reason)

    console.print(table)


def _load_remote(environ: Mapping[str, str] | None) -> RemoteSettings | int:
    try:
        return load_remote_settings(environ)
    except UnsupportedOsError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_UNSUPPORTED_OS
    except ConfigError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_CONFIG


def _run_download(environ: Mapping[str, str] | None) -> int | None:
    """Run the download phase. Returns None when later operations may proceed."""
    remote = _load_remote(environ)
    if isinstance(remote, int):
        return remote
    config = load_cache_config(environ)

    console.print(f"Downloading cache [bold]{remote.archive_name}[/bold] into {config.staging_dir} ...")
    try:
        result = download_cache(config, remote, _build_client(remote))
    except RemoteNotFoundError as exc:
        console.print(f"[yellow]{exc}[/yellow] Continuing without a cache.")
        return EXIT_OK
    except StagingExistsError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_DOWNLOAD_STAGING
    except TransportError as exc:
        err_console.print(f"[red]Download failed:[/red] {exc}")
        return EXIT_DOWNLOAD_TRANSPORT
    except UnpackError as exc:
        err_console.print(f"[red]Unpacking failed:[/red] {exc}")
        return EXIT_DOWNLOAD_UNPACK
    except Exception as exc:
        err_console.print(f"[red]Download failed:[/red] {exc}")
        return EXIT_DOWNLOAD_FAILED

    console.print(
        f"[green]Unpacked {len(result.unpack.extracted)} entries[/green] into {result.staging_dir}"
    )
    if result.unpack.errors:
        console.print(
            f"[yellow]{len(result.unpack.errors)} entries could not be extracted.[/yellow]"
        )
    return None


def _run_backup(environ: Mapping[str, str] | None) -> int:
    remote = _load_remote(environ)
    if isinstance(remote, int):
        return remote
    config = load_cache_config(environ)

    console.print(
        f"Caching {len(config.directories)} directories and {len(config.files)} files "
        f"as [bold]{remote.archive_name}[/bold] ..."
    )
    try:
        result = backup_cache(config, remote, _build_client(remote))
    except NoSourcesError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_BACKUP_NO_SOURCES
    except NoRecordsError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_BACKUP_NO_RECORDS
    except StagingExistsError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_BACKUP_STAGING_EXISTS
    except CollectionSetupError as exc:
        err_console.print(f"[red]Could not prepare remote cache location:[/red] {exc}")
        return EXIT_BACKUP_REMOTE_SETUP
    except (StagingError, OSError) as exc:
        err_console.print(f"[red]Could not stage cached items:[/red] {exc}")
        return EXIT_BACKUP_STAGING
    except PackError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_BACKUP_PACK
    except TransportError as exc:
        err_console.print(f"[red]Upload failed:[/red] {exc}")
        return EXIT_BACKUP_UPLOAD
    except Exception as exc:
        err_console.print(f"[red]Backup failed:[/red] {exc}")
        return EXIT_BACKUP_FAILED

    snapshot = result.snapshot
    _render_path_summary(
        "Cached",
        [str(record.full_path) for record in snapshot.records if record.name not in snapshot.copy_failures],
        "green",
    )
    _render_path_summary("Copy failed", snapshot.copy_failures, "yellow")
    _render_skipped_sources(snapshot.skipped)
    console.print(
        f"Archive: {result.pack.file_count} files, {result.pack.directory_count} directories "
        f"uploaded to {result.remote_url}"
    )
    return EXIT_OK


def _run_restore(environ: Mapping[str, str] | None) -> int:
    config = load_cache_config(environ)
    try:
        result = restore_cache(config)
    except StagingMissingError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_RESTORE_NO_STAGING
    except ManifestMissingError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_RESTORE_NO_MANIFEST
    except ManifestReadError as exc:
        err_console.print(f"[red]{exc}[/red]")
        return EXIT_RESTORE_MANIFEST_UNREADABLE
    except ManifestMalformedError as exc:
        err_console.print(f"[red]Could not parse the staged manifest:[/red] {exc}")
        return EXIT_RESTORE_MANIFEST_MALFORMED
    except StagingRemoveError as exc:
        err_console.print(
            f"[red]{exc}[/red] Exiting with an error so a later backup does not trip over it."
        )
        return EXIT_RESTORE_CLEANUP
    except Exception as exc:
        err_console.print(f"[red]Restore failed:[/red] {exc}")
        return EXIT_RESTORE_FAILED

    _render_path_summary("Restored", result.restored, "green")
    _render_path_summary("Destination missing", result.missing_destination, "yellow")
    _render_path_summary("Failed", result.failed, "red")
    console.print(
        f"Restored {len(result.restored)} of {result.total} cached item(s); "
        f"{len(result.skipped)} not selected, {len(result.failed)} error(s)."
    )
    return EXIT_OK


def _run_remove_local(environ: Mapping[str, str] | None) -> int:
    config = load_cache_config(environ)
    try:
        removed = remove_local_cache(config)
    except StagingError as exc:
        err_console.print(f"[red]Could not remove the local cache:[/red] {exc}")
        return EXIT_RMLOCALCACHE_FAILED
    console.print(f"[green]Removed[/green] {removed}")
    return EXIT_OK


def _run_remove_remote(environ: Mapping[str, str] | None) -> int:
    remote = _load_remote(environ)
    if isinstance(remote, int):
        return remote
    try:
        url = remove_remote_cache(_build_client(remote))
    except TransportError as exc:
        err_console.print(f"[red]Could not remove the remote cache:[/red] {exc}")
        return EXIT_RMREMCACHE_FAILED
    console.print(f"[green]Removed[/green] {url}")
    return EXIT_OK


def _print_invalid_args(args: list[str]) -> None:
    err_console.print(
        "Could not find a valid operation. Run with /help to see the available operations."
    )
    err_console.print("Received arguments were:")
    for arg in args:
        err_console.print(f"  {arg}", markup=False)


def dispatch(args: list[str], environ: Mapping[str, str] | None = None) -> int:
    """Run the operations named by slash flags and return the process exit code."""
    if OsType.detect() is OsType.UNKNOWN:
        err_console.print("[red]Detected an unknown or unsupported operating system. Aborting.[/red]")
        return EXIT_UNSUPPORTED_OS

    flags = set(args)
    handled = False

    if FLAG_HELP in flags:
        console.print(HELP_TEXT, markup=False, highlight=False)
        handled = True

    if FLAG_BACKUP in flags and flags & {FLAG_DOWNLOAD, FLAG_RESTORE}:
        err_console.print(
            "[red]/backup cannot run together with /download or /restore.[/red] "
            "Run them in separate calls."
        )
        return EXIT_USAGE

    if FLAG_DOWNLOAD in flags:
        code = _run_download(environ)
        if code is not None:
            return code
        handled = True

    if FLAG_RMLOCALCACHE in flags:
        return _run_remove_local(environ)

    if FLAG_RMREMCACHE in flags:
        return _run_remove_remote(environ)

    if FLAG_BACKUP in flags:
        return _run_backup(environ)

    if FLAG_RESTORE in flags:
        return _run_restore(environ)

    if handled:
        return EXIT_OK

    _print_invalid_args(args)
    return EXIT_USAGE


@app.command(context_settings={"ignore_unknown_options": True})
def main(
    args: list[str] | None = typer.Argument(
        None,
        help="Operations to run: /help, /backup, /download, /restore, /rmlocalcache, /rmremcache.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    """Back up, download, restore or remove the CI cache for this project and branch."""
    _configure_logging(verbose)
    raise typer.Exit(code=dispatch(list(args or [])))
