from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from gitcache import snapshot as snapshot_module
from gitcache.archive import pack_directory, unpack_archive
from gitcache.errors import NoRecordsError, NoSourcesError, StagingExistsError
from gitcache.manifest import read_manifest
from gitcache.models import CacheKind
from gitcache.replay import replay_manifest
from gitcache.selection import build_selection
from gitcache.snapshot import build_snapshot


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_snapshot_stages_content_and_manifest(tmp_path: Path) -> None:
    src_dir = tmp_path / "src_dir"
    _write(src_dir / "a.txt", "alpha")
    config_file = _write(tmp_path / "config.ini", "[main]\nkey=1\n")
    staging = tmp_path / "work" / ".cache"

    result = build_snapshot([str(src_dir)], [str(config_file)], staging)

    assert [(record.name, record.kind) for record in result.records] == [
        ("src_dir", CacheKind.DIRECTORY),
        ("config.ini", CacheKind.FILE),
    ]
    assert (staging / "src_dir" / "a.txt").read_text(encoding="utf-8") == "alpha"
    assert (staging / "config.ini").read_text(encoding="utf-8") == "[main]\nkey=1\n"
    assert read_manifest(staging) == result.records


def test_one_missing_source_still_snapshots_the_rest(tmp_path: Path) -> None:
    (tmp_path / "one").mkdir()
    (tmp_path / "two").mkdir()
    staging = tmp_path / ".cache"

    result = build_snapshot(
        [str(tmp_path / "one"), str(tmp_path / "gone"), str(tmp_path / "two")],
        [],
        staging,
    )

    assert len(result.records) == 2
    assert len(read_manifest(staging)) == 2
    assert [item.raw for item in result.skipped] == [str(tmp_path / "gone")]


def test_no_sources_is_a_hard_stop(tmp_path: Path) -> None:
    with pytest.raises(NoSourcesError):
        build_snapshot([], [], tmp_path / ".cache")
    assert not (tmp_path / ".cache").exists()


def test_zero_records_is_a_hard_stop(tmp_path: Path) -> None:
    with pytest.raises(NoRecordsError):
        build_snapshot([str(tmp_path / "missing")], [str(tmp_path / "also-missing")], tmp_path / ".cache")
    assert not (tmp_path / ".cache").exists()


def test_existing_staging_is_left_alone(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    staging = tmp_path / ".cache"
    marker = _write(staging / "leftover.txt", "from an earlier run")
    (tmp_path / "src").mkdir()

    def _must_not_run(*args, **kwargs):
        raise AssertionError("sources were inspected before the staging guard")

    monkeypatch.setattr(snapshot_module, "classify_sources", _must_not_run)

    with pytest.raises(StagingExistsError):
        build_snapshot([str(tmp_path / "src")], [], staging)

    assert marker.read_text(encoding="utf-8") == "from an earlier run"
    assert sorted(p.name for p in staging.iterdir()) == ["leftover.txt"]


def test_copy_failure_does_not_abort_other_items(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "dir").mkdir()
    broken = _write(tmp_path / "broken.txt", "x")
    fine = _write(tmp_path / "fine.txt", "y")
    staging = tmp_path / ".cache"
    real_copy_file = snapshot_module.copy_file

    def _flaky_copy(source: Path, destination: Path) -> None:
        if source.name == "broken.txt":
            raise PermissionError("denied")
        real_copy_file(source, destination)

    monkeypatch.setattr(snapshot_module, "copy_file", _flaky_copy)

    result = build_snapshot([str(tmp_path / "dir")], [str(broken), str(fine)], staging)

    assert result.copy_failures == ["broken.txt"]
    assert (staging / "fine.txt").exists()
    assert (staging / "dir").is_dir()
    assert len(read_manifest(staging)) == 3


def test_end_to_end_snapshot_pack_unpack_replay(tmp_path: Path) -> None:
    src_dir = tmp_path / "src_dir"
    _write(src_dir / "a.txt", "alpha")
    _write(src_dir / "nested" / "deep.txt", "deep")
    config_file = _write(tmp_path / "config.ini", "[main]\n")
    work = tmp_path / "work"
    staging = work / ".cache"

    snapshot = build_snapshot([str(src_dir)], [str(config_file)], staging)
    assert len(snapshot.records) == 2
    archive = work / "Unix-main.zip"
    pack_directory(staging, archive)
    shutil.rmtree(staging)

    fresh = tmp_path / "fresh" / ".cache"
    fresh.mkdir(parents=True)
    unpack_archive(archive, fresh)
    assert (fresh / "src_dir" / "nested" / "deep.txt").read_text(encoding="utf-8") == "deep"
    assert (fresh / "config.ini").exists()

    shutil.rmtree(src_dir)
    config_file.unlink()

    selection = build_selection([str(src_dir)], [str(config_file)])
    result = replay_manifest(read_manifest(fresh), selection, fresh)

    assert sorted(result.restored) == ["config.ini", "src_dir"]
    assert (src_dir / "a.txt").read_text(encoding="utf-8") == "alpha"
    assert (src_dir / "nested" / "deep.txt").read_text(encoding="utf-8") == "deep"
    assert config_file.read_text(encoding="utf-8") == "[main]\n"


def test_source_containing_staging_is_copied_without_it(tmp_path: Path) -> None:
    project = tmp_path / "project"
    _write(project / "src" / "main.rs", "fn main() {}\n")
    other = tmp_path / "other"
    _write(other / "b.txt", "b")
    staging = project / ".cache"

    result = build_snapshot([str(project), str(other)], [], staging)

    assert [record.name for record in result.records] == ["project", "other"]
    assert result.copy_failures == []
    assert (staging / "project" / "src" / "main.rs").read_text(encoding="utf-8") == "fn main() {}\n"
    assert not (staging / "project" / ".cache").exists()
    assert (staging / "other" / "b.txt").exists()
