from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from gitcache.errors import ManifestMalformedError, ManifestMissingError, ManifestReadError
from gitcache.models import MANIFEST_FILENAME, CacheKind, RestoreRecord


NAME_KEY = "restore_obj_name"
KIND_KEY = "cachetype"
RESTORE_TO_KEY = "restore_to"


def manifest_path(staging_dir: Path) -> Path:
    return staging_dir / MANIFEST_FILENAME


def record_to_dict(record: RestoreRecord) -> dict[str, str]:
    return {
        NAME_KEY: record.name,
        KIND_KEY: record.kind.value,
        RESTORE_TO_KEY: record.restore_to,
    }


def record_from_dict(data: Any) -> RestoreRecord:
    if not isinstance(data, dict):
        raise ManifestMalformedError(f"Manifest entry must be an object, got {type(data).__name__}")

    missing = [key for key in (NAME_KEY, KIND_KEY, RESTORE_TO_KEY) if key not in data]
    if missing:
        raise ManifestMalformedError(f"Manifest entry is missing field(s): {', '.join(missing)}")

    try:
        kind = CacheKind(data[KIND_KEY])
    except ValueError as exc:
        raise ManifestMalformedError(f"Unknown cache type in manifest: {data[KIND_KEY]!r}") from exc

    name = data[NAME_KEY]
    restore_to = data[RESTORE_TO_KEY]
    if not isinstance(name, str) or not isinstance(restore_to, str):
        raise ManifestMalformedError("Manifest entry name and restore location must be strings")

    try:
        return RestoreRecord(name=name, kind=kind, restore_to=restore_to)
    except ValueError as exc:
        raise ManifestMalformedError(str(exc)) from exc


def dump_manifest(records: Iterable[RestoreRecord]) -> str:
    return json.dumps([record_to_dict(record) for record in records], indent=2) + "\n"


def load_manifest_text(text: str) -> list[RestoreRecord]:
    """Parse manifest JSON. An empty list is valid; anything unparseable is malformed."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestMalformedError(f"Manifest is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise ManifestMalformedError("Manifest must be a JSON array of restore records")

    return [record_from_dict(item) for item in payload]


def write_manifest(staging_dir: Path, records: Iterable[RestoreRecord]) -> Path:
    path = manifest_path(staging_dir)
    with path.open("w", encoding="utf-8") as fh:
        fh.write(dump_manifest(records))
    return path


def read_manifest(staging_dir: Path) -> list[RestoreRecord]:
    path = manifest_path(staging_dir)
    if not path.is_file():
        raise ManifestMissingError(
            f"{path} does not exist. It is needed to know where cached items belong."
        )

    try:
        with path.open("r", encoding="utf-8") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestReadError(f"Could not read {path}: {exc}") from exc

    return load_manifest_text(text)
