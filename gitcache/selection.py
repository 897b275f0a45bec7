from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from gitcache.models import CacheKind, RestoreRecord


def normalize_path(raw: str | Path) -> Path:
    """Absolute, normalized form used on both sides of a selection lookup."""
    path = Path(raw).expanduser()
    try:
        return path.resolve()
    except (OSError, RuntimeError):
        return Path(os.path.normpath(os.path.abspath(path)))


@dataclass(frozen=True, slots=True)
class SelectionSet:
    entries: frozenset[tuple[CacheKind, Path]] = frozenset()

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def contains(self, kind: CacheKind, path: str | Path) -> bool:
        return (kind, normalize_path(path)) in self.entries

    def matches(self, record: RestoreRecord) -> bool:
        return self.contains(record.kind, record.full_path)


def build_selection(
    directories: Iterable[str] | None = None,
    files: Iterable[str] | None = None,
) -> SelectionSet:
    entries = {(CacheKind.DIRECTORY, normalize_path(raw)) for raw in (directories or []) if raw}
    entries.update((CacheKind.FILE, normalize_path(raw)) for raw in (files or []) if raw)
    return SelectionSet(entries=frozenset(entries))
