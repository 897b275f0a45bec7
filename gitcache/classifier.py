from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from gitcache.errors import (
    ClassifyError,
    DuplicateNameError,
    KindMismatchError,
    NoParentError,
    SourceNotFoundError,
    StagingOverlapError,
)
from gitcache.models import MANIFEST_FILENAME, CacheKind, RestoreRecord, SkippedSource


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClassificationResult:
    records: list[RestoreRecord] = field(default_factory=list)
    skipped: list[SkippedSource] = field(default_factory=list)


def resolve_source_path(raw: str) -> Path:
    """Resolve `raw` to an absolute, symlink-free path, or fall back to it unchanged."""
    try:
        return Path(raw).expanduser().resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        logger.warning(
            "Could not resolve %s (%s). Continuing with the unresolved path; "
            "caching outside the project directory is not recommended.",
            raw,
            exc,
        )
        return Path(raw)


def _actual_kind(path: Path) -> CacheKind | None:
    if path.is_dir():
        return CacheKind.DIRECTORY
    if path.is_file():
        return CacheKind.FILE
    return None


def classify_path(raw: str, kind: CacheKind) -> RestoreRecord:
    path = resolve_source_path(raw)

    if not path.exists():
        raise SourceNotFoundError(f"Nothing found at {path}")

    actual = _actual_kind(path)
    if actual is not kind:
        found = actual.value.lower() if actual else "special file"
        raise KindMismatchError(
            f"Expected a {kind.value.lower()} at {path} but found a {found}. "
            "Check that the right variable prefix is used."
        )

    name = path.name
    parent = path.parent
    if not name or name in {".", ".."} or parent == path:
        raise NoParentError(
            f"{path} has no parent directory to restore into. "
            "Caching a filesystem root is not supported."
        )

    record = RestoreRecord(name=name, kind=kind, restore_to=str(parent))
    logger.info("Created restore record for %s %s", kind.value.lower(), record.full_path)
    return record


def classify_sources(
    directories: Iterable[str],
    files: Iterable[str],
    *,
    staging_dir: Path | None = None,
) -> ClassificationResult:
    """Classify every source, skipping (and logging) the ones that fail.

    With `staging_dir`, sources that are the staging directory or lie inside
    it are rejected. Sources containing it are allowed; the copy skips it.
    """
    result = ClassificationResult()
    taken_names = {MANIFEST_FILENAME}
    staging = staging_dir.resolve() if staging_dir is not None else None
    sources = [(raw, CacheKind.DIRECTORY) for raw in directories]
    sources.extend((raw, CacheKind.FILE) for raw in files)

    for raw, kind in sources:
        try:
            record = classify_path(raw, kind)
            if staging is not None and record.full_path.is_relative_to(staging):
                raise StagingOverlapError(
                    f"{record.full_path} is inside the staging directory {staging}"
                )
            if record.name in taken_names:
                raise DuplicateNameError(
                    f"Another cached item is already staged as {record.name!r}; "
                    "staging is keyed by base name."
                )
        except ClassifyError as exc:
            logger.warning("Skipping %s %s: %s", kind.value.lower(), raw, exc)
            result.skipped.append(SkippedSource(raw=raw, kind=kind, reason=str(exc)))
            continue

        taken_names.add(record.name)
        result.records.append(record)

    return result
