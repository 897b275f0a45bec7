from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from gitcache.classifier import classify_sources
from gitcache.errors import NoRecordsError, NoSourcesError
from gitcache.manifest import write_manifest
from gitcache.models import CacheKind, RestoreRecord, SnapshotResult
from gitcache.staging import copy_file, copy_tree, discard_staging, ensure_staging_absent


logger = logging.getLogger(__name__)


def stage_record(record: RestoreRecord, staging_dir: Path) -> None:
    source = record.full_path
    destination = record.staged_path(staging_dir)
    if record.kind is CacheKind.DIRECTORY:
        copy_tree(source, destination, exclude=staging_dir)
    else:
        copy_file(source, destination)


def build_snapshot(
    directories: Sequence[str],
    files: Sequence[str],
    staging_dir: Path,
) -> SnapshotResult:
    """Classify the sources, then fill a fresh staging directory with the manifest and copies.

    Per-source problems are logged and skipped. Raises when nothing was
    requested, when nothing usable is left, or when the staging directory
    already exists (checked before any source is looked at).
    """
    if not directories and not files:
        raise NoSourcesError(
            "No directories or files to cache. Set at least one environment variable "
            "starting with cachepath_ or cachefile_ to a path."
        )

    ensure_staging_absent(staging_dir)

    classified = classify_sources(directories, files, staging_dir=staging_dir)
    if not classified.records:
        raise NoRecordsError(
            f"None of the {len(directories) + len(files)} requested source(s) could be cached."
        )

    staging_dir.mkdir(parents=True)
    result = SnapshotResult(
        staging_dir=staging_dir,
        records=classified.records,
        skipped=classified.skipped,
    )
    try:
        write_manifest(staging_dir, result.records)
        for record in result.records:
            try:
                stage_record(record, staging_dir)
            except OSError as exc:
                logger.warning(
                    "Failed to copy %s into %s: %s. It will not be restored later.",
                    record.full_path,
                    staging_dir,
                    exc,
                )
                result.copy_failures.append(record.name)
                continue
            logger.debug("Staged %s", record.full_path)
    except BaseException:
        discard_staging(staging_dir)
        raise

    logger.info(
        "Staged %d of %d requested item(s) in %s",
        len(result.records) - len(result.copy_failures),
        len(directories) + len(files),
        staging_dir,
    )
    return result
