from __future__ import annotations

import logging
from pathlib import Path

from gitcache.archive import pack_directory, unpack_archive
from gitcache.config import CacheConfig, RemoteSettings
from gitcache.errors import StagingMissingError
from gitcache.manifest import read_manifest
from gitcache.models import BackupResult, DownloadResult, ReplayResult
from gitcache.replay import replay_manifest
from gitcache.selection import build_selection
from gitcache.snapshot import build_snapshot
from gitcache.staging import discard_staging, remove_staging, staging_area
from gitcache.webdav import WebDavClient


logger = logging.getLogger(__name__)


def _local_archive_path(config: CacheConfig, remote: RemoteSettings) -> Path:
    return config.staging_dir.parent / remote.archive_name


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not delete %s: %s. Ignoring.", path, exc)


def backup_cache(config: CacheConfig, remote: RemoteSettings, client: WebDavClient) -> BackupResult:
    """Snapshot the configured sources, pack them and upload the archive.

    The staging directory and local archive are removed on every exit path.
    """
    snapshot = build_snapshot(config.directories, config.files, config.staging_dir)
    archive_path = _local_archive_path(config, remote)
    try:
        logger.info("Checking remote cache collections under %s", remote.namespace_url)
        client.ensure_collections()
        pack = pack_directory(config.staging_dir, archive_path)
        remote_url = client.upload(archive_path)
    finally:
        _remove_quietly(archive_path)
        discard_staging(config.staging_dir)

    return BackupResult(snapshot=snapshot, pack=pack, remote_url=remote_url)


def download_cache(config: CacheConfig, remote: RemoteSettings, client: WebDavClient) -> DownloadResult:
    """Fetch the archive into a fresh staging directory and unpack it there.

    On any failure, including a missing remote archive, the staging directory
    created here is removed again.
    """
    with staging_area(config.staging_dir, keep_on_success=True) as staging_dir:
        archive_path = staging_dir / remote.archive_name
        remote_url = client.download(archive_path)
        unpack = unpack_archive(archive_path, staging_dir)
        for problem in unpack.errors:
            logger.warning("Archive entry could not be extracted: %s", problem)
        _remove_quietly(archive_path)

    return DownloadResult(staging_dir=config.staging_dir, remote_url=remote_url, unpack=unpack)


def restore_cache(config: CacheConfig) -> ReplayResult:
    """Replay the staged manifest against the current selection, then drop staging."""
    staging_dir = config.staging_dir
    if not staging_dir.is_dir():
        raise StagingMissingError(
            f"No staging directory at {staging_dir}. Run /download before /restore."
        )

    try:
        records = read_manifest(staging_dir)
        if not records:
            logger.warning("The staged manifest is empty; nothing to restore.")

        selection = build_selection(config.directories, config.files)
        if not selection:
            logger.warning(
                "No cachepath_ or cachefile_ variables are set, so no cached item is selected."
            )
        return replay_manifest(records, selection, staging_dir)
    finally:
        remove_staging(staging_dir)


def remove_local_cache(config: CacheConfig) -> Path:
    remove_staging(config.staging_dir)
    logger.info("Removed local cache directory %s", config.staging_dir)
    return config.staging_dir


def remove_remote_cache(client: WebDavClient) -> str:
    return client.delete()
