from __future__ import annotations

import logging
import os
import shutil
import stat
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from gitcache.errors import StagingExistsError, StagingMissingError, StagingRemoveError


logger = logging.getLogger(__name__)


def ensure_staging_absent(staging_dir: Path) -> None:
    if staging_dir.exists():
        raise StagingExistsError(
            f"Found an existing staging directory at {staging_dir}. Refusing to overwrite it; "
            "remove it with /rmlocalcache or make sure no project folder uses that name."
        )


def _make_writable_and_retry(func, path: str, exc: BaseException) -> None:
    # Cached tool trees (Go modules, pip wheels) are often 0555/0444.
    if not isinstance(exc, PermissionError) or func not in (os.unlink, os.remove, os.rmdir):
        raise exc
    parent = os.path.dirname(path)
    os.chmod(parent, stat.S_IMODE(os.stat(parent).st_mode) | stat.S_IRWXU)
    if not os.path.islink(path):
        os.chmod(path, stat.S_IMODE(os.lstat(path).st_mode) | stat.S_IWUSR)
    func(path)


def _rmtree(path: Path) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=lambda func, p, exc_info: _make_writable_and_retry(func, p, exc_info[1]))


def remove_staging(staging_dir: Path) -> None:
    if not staging_dir.exists():
        raise StagingMissingError(
            f"No staging directory at {staging_dir}. It may already have been removed."
        )
    try:
        _rmtree(staging_dir)
    except OSError as exc:
        raise StagingRemoveError(f"Failed removing {staging_dir}: {exc}") from exc
    logger.debug("Removed staging directory %s", staging_dir)


@contextmanager
def staging_area(staging_dir: Path, *, keep_on_success: bool = False) -> Iterator[Path]:
    """Create the staging directory and remove it again on every exit path.

    With `keep_on_success` the directory survives a clean exit and is only
    removed when the body raises. A pre-existing directory is never touched.
    """
    ensure_staging_absent(staging_dir)
    staging_dir.mkdir(parents=True)
    try:
        yield staging_dir
    except BaseException:
        discard_staging(staging_dir)
        raise
    if not keep_on_success:
        discard_staging(staging_dir)


def discard_staging(staging_dir: Path) -> None:
    """Best-effort removal: failures are logged, never raised."""
    try:
        remove_staging(staging_dir)
    except StagingMissingError:
        pass
    except StagingRemoveError as exc:
        logger.error("%s", exc)


def copy_tree(source: Path, destination: Path, *, exclude: Path | None = None) -> None:
    """Copy `source` into `destination`, skipping `exclude` if it lies inside `source`."""
    ignore = None
    if exclude is not None:
        excluded = exclude.resolve()

        def ignore(directory: str, names: list[str]) -> set[str]:
            if Path(directory).resolve() != excluded.parent:
                return set()
            return {name for name in names if name == excluded.name}

    shutil.copytree(source, destination, ignore=ignore, dirs_exist_ok=True)


def copy_file(source: Path, destination: Path) -> None:
    shutil.copy2(source, destination)
