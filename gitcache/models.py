from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


MANIFEST_FILENAME = "data.json"


class CacheKind(str, Enum):
    DIRECTORY = "Directory"
    FILE = "File"


class OsType(str, Enum):
    WINDOWS = "Windows"
    UNIX = "Unix"
    UNKNOWN = "Unknown"

    @classmethod
    def detect(cls) -> "OsType":
        if os.name == "nt":
            return cls.WINDOWS
        if os.name == "posix":
            return cls.UNIX
        return cls.UNKNOWN


def _is_single_component(name: str) -> bool:
    if not name or name in {".", ".."}:
        return False
    return "/" not in name and "\\" not in name


@dataclass(frozen=True, slots=True)
class RestoreRecord:
    name: str
    kind: CacheKind
    restore_to: str

    def __post_init__(self) -> None:
        if not _is_single_component(self.name):
            raise ValueError(f"Record name must be a single path component: {self.name!r}")
        if not isinstance(self.kind, CacheKind):
            raise ValueError(f"Unknown cache kind: {self.kind!r}")
        if not self.restore_to:
            raise ValueError(f"Record {self.name!r} has an empty restore location")

    @property
    def full_path(self) -> Path:
        return Path(self.restore_to) / self.name

    def staged_path(self, staging_dir: Path) -> Path:
        return staging_dir / self.name


@dataclass(slots=True)
class SkippedSource:
    raw: str
    kind: CacheKind
    reason: str


@dataclass(slots=True)
class SnapshotResult:
    staging_dir: Path
    records: list[RestoreRecord]
    skipped: list[SkippedSource] = field(default_factory=list)
    copy_failures: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PackResult:
    archive_path: Path
    file_count: int
    directory_count: int


@dataclass(slots=True)
class UnpackResult:
    destination: Path
    extracted: list[str] = field(default_factory=list)
    skipped_names: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(slots=True)
class ReplayResult:
    restored: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    missing_destination: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.restored)
            + len(self.skipped)
            + len(self.missing_destination)
            + len(self.failed)
        )


@dataclass(slots=True)
class BackupResult:
    snapshot: SnapshotResult
    pack: PackResult
    remote_url: str


@dataclass(slots=True)
class DownloadResult:
    staging_dir: Path
    remote_url: str
    unpack: UnpackResult
