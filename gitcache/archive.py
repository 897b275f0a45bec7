from __future__ import annotations

import logging
import os
import shutil
import zipfile
from pathlib import Path, PurePosixPath

from gitcache.errors import PackError, UnpackError
from gitcache.models import PackResult, UnpackResult


logger = logging.getLogger(__name__)

# Stored entries trade archive size for speed on CI runners.
COMPRESSION = zipfile.ZIP_STORED


def pack_directory(source_root: Path, archive_path: Path) -> PackResult:
    """Write every entry under `source_root` into a zip with root-relative names.

    Either a complete archive is produced or none: a partial file is removed
    before `PackError` is raised.
    """
    root = Path(source_root)
    archive_path = Path(archive_path)
    if not root.is_dir():
        raise PackError(f"Cannot pack {root}: it is not a directory")
    if archive_path.resolve().is_relative_to(root.resolve()):
        raise PackError(f"Archive {archive_path} must not be written inside {root}")

    file_count = 0
    directory_count = 0
    try:
        with zipfile.ZipFile(archive_path, "w", compression=COMPRESSION) as zf:
            for path in sorted(root.rglob("*")):
                relative = path.relative_to(root).as_posix()
                if path.is_dir():
                    # Explicit markers keep empty directories; some unzip tools need them.
                    zf.write(path, relative + "/")
                    directory_count += 1
                elif path.is_file():
                    zf.write(path, relative)
                    file_count += 1
                else:
                    logger.warning("Not archiving %s: not a regular file or directory", path)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        _discard_partial(archive_path)
        raise PackError(f"Failed to pack {root} into {archive_path}: {exc}") from exc

    logger.info(
        "Packed %d files and %d directories into %s",
        file_count,
        directory_count,
        archive_path,
    )
    return PackResult(
        archive_path=archive_path,
        file_count=file_count,
        directory_count=directory_count,
    )


def _discard_partial(archive_path: Path) -> None:
    try:
        archive_path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove partial archive %s: %s", archive_path, exc)


def enclosed_name(name: str) -> PurePosixPath | None:
    """Map an archive entry name to a safe relative path, or None if it escapes."""
    normalized = name.replace("\\", "/")
    if not normalized or "\x00" in normalized:
        return None
    path = PurePosixPath(normalized)
    if path.is_absolute():
        return None
    parts = [part for part in path.parts if part not in ("", ".")]
    if not parts or ".." in parts or ":" in parts[0]:
        return None
    return PurePosixPath(*parts)


def _stored_mode(info: zipfile.ZipInfo) -> int:
    return (info.external_attr >> 16) & 0o7777


def _apply_mode(path: Path, mode: int) -> None:
    if os.name == "posix" and mode:
        os.chmod(path, mode)


def unpack_archive(archive_path: Path, destination: Path | None = None) -> UnpackResult:
    """Extract `archive_path` into `destination` (default: the archive's directory).

    Failures on individual entries are collected in the result and extraction
    continues with the next entry.
    """
    try:
        archive = Path(archive_path).resolve(strict=True)
    except OSError as exc:
        raise UnpackError(f"Could not find archive {archive_path}: {exc}") from exc

    target = Path(destination) if destination is not None else archive.parent
    result = UnpackResult(destination=target)

    try:
        zf = zipfile.ZipFile(archive)
    except (OSError, zipfile.BadZipFile) as exc:
        raise UnpackError(f"Could not open archive {archive}: {exc}") from exc

    # Directory modes are applied last so read-only directories can still be filled.
    directory_modes: list[tuple[Path, int]] = []
    with zf:
        for info in zf.infolist():
            relative = enclosed_name(info.filename)
            if relative is None:
                logger.warning("Skipping archive entry with unsafe name: %r", info.filename)
                result.skipped_names.append(info.filename)
                continue

            outpath = target.joinpath(*relative.parts)
            try:
                if info.is_dir():
                    outpath.mkdir(parents=True, exist_ok=True)
                    directory_modes.append((outpath, _stored_mode(info)))
                else:
                    outpath.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, outpath.open("wb") as dst:
                        shutil.copyfileobj(src, dst)
                    _apply_mode(outpath, _stored_mode(info))
            except (OSError, zipfile.BadZipFile, NotImplementedError) as exc:
                logger.warning("Failed to extract %s: %s", info.filename, exc)
                result.errors.append(f"{info.filename}: {exc}")
                continue

            result.extracted.append(info.filename)

    for path, mode in reversed(directory_modes):
        try:
            _apply_mode(path, mode)
        except OSError as exc:
            logger.warning("Failed to set permissions on %s: %s", path, exc)
            result.errors.append(f"{path}: {exc}")

    logger.info("Extracted %d archive entries into %s", len(result.extracted), target)
    return result
