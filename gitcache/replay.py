from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from gitcache.errors import (
    KindMismatchError,
    RestoreCopyError,
    RestoreDestinationMissingError,
    RestoreError,
)
from gitcache.models import CacheKind, ReplayResult, RestoreRecord
from gitcache.selection import SelectionSet
from gitcache.staging import copy_file, copy_tree


logger = logging.getLogger(__name__)


def _check_destination(record: RestoreRecord) -> None:
    if not Path(record.restore_to).is_dir():
        raise RestoreDestinationMissingError(
            f"Restore location {record.restore_to} does not exist. "
            "The cache may have been created on a different operating system."
        )


def restore_directory(record: RestoreRecord, staging_dir: Path) -> None:
    if record.kind is not CacheKind.DIRECTORY:
        raise KindMismatchError(f"{record.name} is cached as a {record.kind.value.lower()}, not a directory")
    _check_destination(record)
    try:
        copy_tree(record.staged_path(staging_dir), record.full_path)
    except OSError as exc:
        raise RestoreCopyError(f"Could not restore directory {record.full_path}: {exc}") from exc


def restore_file(record: RestoreRecord, staging_dir: Path) -> None:
    if record.kind is not CacheKind.FILE:
        raise KindMismatchError(f"{record.name} is cached as a {record.kind.value.lower()}, not a file")
    _check_destination(record)
    try:
        copy_file(record.staged_path(staging_dir), record.full_path)
    except OSError as exc:
        raise RestoreCopyError(f"Could not restore file {record.full_path}: {exc}") from exc


def restore_record(record: RestoreRecord, staging_dir: Path) -> None:
    if record.kind is CacheKind.DIRECTORY:
        restore_directory(record, staging_dir)
    else:
        restore_file(record, staging_dir)


def replay_manifest(
    records: Iterable[RestoreRecord],
    selection: SelectionSet,
    staging_dir: Path,
) -> ReplayResult:
    """Copy every selected record from staging back into place.

    Item-level problems are logged and counted; the loop always completes.
    """
    result = ReplayResult()
    for record in records:
        if not selection.matches(record):
            logger.debug("Skipping %s: not selected for this run", record.full_path)
            result.skipped.append(record.name)
            continue

        try:
            restore_record(record, staging_dir)
        except RestoreDestinationMissingError as exc:
            logger.warning("Skipping %s: %s", record.name, exc)
            result.missing_destination.append(record.name)
            continue
        except RestoreError as exc:
            logger.error("%s", exc)
            result.failed.append(record.name)
            continue

        logger.info("Restored %s %s", record.kind.value.lower(), record.full_path)
        result.restored.append(record.name)

    logger.info(
        "Restored %d item(s); %d not selected, %d without a destination, %d failed",
        len(result.restored),
        len(result.skipped),
        len(result.missing_destination),
        len(result.failed),
    )
    return result
