from __future__ import annotations

from pathlib import Path

import pytest

from gitcache.errors import KindMismatchError, RestoreDestinationMissingError
from gitcache.models import CacheKind, RestoreRecord
from gitcache.replay import replay_manifest, restore_directory, restore_file, restore_record
from gitcache.selection import build_selection


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def staged(tmp_path: Path) -> tuple[Path, Path]:
    staging = tmp_path / ".cache"
    _write(staging / "A" / "inner.txt", "inside A")
    _write(staging / "B", "file B")
    dest = tmp_path / "dest"
    dest.mkdir()
    return staging, dest


def test_selection_restores_only_selected_records(staged: tuple[Path, Path]) -> None:
    staging, dest = staged
    records = [
        RestoreRecord(name="A", kind=CacheKind.DIRECTORY, restore_to=str(dest)),
        RestoreRecord(name="B", kind=CacheKind.FILE, restore_to=str(dest)),
    ]
    selection = build_selection(directories=[str(dest / "A")])

    result = replay_manifest(records, selection, staging)

    assert result.restored == ["A"]
    assert result.skipped == ["B"]
    assert result.failed == []
    assert (dest / "A" / "inner.txt").read_text(encoding="utf-8") == "inside A"
    assert not (dest / "B").exists()


def test_selection_is_keyed_by_kind(staged: tuple[Path, Path]) -> None:
    staging, dest = staged
    records = [RestoreRecord(name="B", kind=CacheKind.FILE, restore_to=str(dest))]

    result = replay_manifest(records, build_selection(directories=[str(dest / "B")]), staging)

    assert result.skipped == ["B"]
    assert result.restored == []


def test_missing_destination_is_a_soft_miss(staged: tuple[Path, Path], tmp_path: Path) -> None:
    staging, dest = staged
    elsewhere = tmp_path / "other-host" / "home" / "ci"
    records = [
        RestoreRecord(name="A", kind=CacheKind.DIRECTORY, restore_to=str(elsewhere)),
        RestoreRecord(name="B", kind=CacheKind.FILE, restore_to=str(dest)),
    ]
    selection = build_selection([str(elsewhere / "A")], [str(dest / "B")])

    result = replay_manifest(records, selection, staging)

    assert result.missing_destination == ["A"]
    assert result.failed == []
    assert result.restored == ["B"]


def test_copy_failure_is_counted_and_loop_continues(staged: tuple[Path, Path]) -> None:
    staging, dest = staged
    records = [
        RestoreRecord(name="ghost", kind=CacheKind.FILE, restore_to=str(dest)),
        RestoreRecord(name="B", kind=CacheKind.FILE, restore_to=str(dest)),
    ]
    selection = build_selection(files=[str(dest / "ghost"), str(dest / "B")])

    result = replay_manifest(records, selection, staging)

    assert result.failed == ["ghost"]
    assert result.restored == ["B"]
    assert result.total == 2


def test_restore_merges_into_existing_directory(staged: tuple[Path, Path]) -> None:
    staging, dest = staged
    _write(dest / "A" / "local.txt", "kept")
    record = RestoreRecord(name="A", kind=CacheKind.DIRECTORY, restore_to=str(dest))

    restore_record(record, staging)

    assert (dest / "A" / "local.txt").read_text(encoding="utf-8") == "kept"
    assert (dest / "A" / "inner.txt").read_text(encoding="utf-8") == "inside A"


def test_kind_specific_restore_rejects_other_kind(staged: tuple[Path, Path]) -> None:
    staging, dest = staged
    directory = RestoreRecord(name="A", kind=CacheKind.DIRECTORY, restore_to=str(dest))
    file_record = RestoreRecord(name="B", kind=CacheKind.FILE, restore_to=str(dest))

    with pytest.raises(KindMismatchError):
        restore_file(directory, staging)
    with pytest.raises(KindMismatchError):
        restore_directory(file_record, staging)
    assert not (dest / "A").exists()
    assert not (dest / "B").exists()


def test_restore_record_reports_missing_destination(staged: tuple[Path, Path], tmp_path: Path) -> None:
    staging, _ = staged
    record = RestoreRecord(name="B", kind=CacheKind.FILE, restore_to=str(tmp_path / "nowhere"))
    with pytest.raises(RestoreDestinationMissingError):
        restore_record(record, staging)


def test_selection_normalizes_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "sub").mkdir()
    monkeypatch.chdir(tmp_path)

    selection = build_selection(directories=[f"{tmp_path}//sub/"], files=["conf.ini"])

    assert selection.contains(CacheKind.DIRECTORY, tmp_path / "sub")
    assert selection.contains(CacheKind.FILE, tmp_path / "conf.ini")
    assert not selection.contains(CacheKind.FILE, tmp_path / "sub")
    assert len(selection) == 2


def test_empty_selection_is_falsy() -> None:
    assert not build_selection()
    assert not build_selection([""], [])
