from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from gitcache.config import CacheConfig, RemoteSettings
from gitcache.errors import RemoteNotFoundError
from gitcache.models import OsType


class FakeRemote:
    """In-memory stand-in for WebDavClient that keeps the archive in a local directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.ensure_calls = 0
        self.uploads = 0

    @property
    def stored(self) -> Path:
        return self.root / "archive.zip"

    def ensure_collections(self) -> None:
        self.ensure_calls += 1

    def upload(self, local_path: Path) -> str:
        shutil.copy2(local_path, self.stored)
        self.uploads += 1
        return "fake://archive.zip"

    def download(self, destination: Path) -> str:
        if not self.stored.exists():
            raise RemoteNotFoundError("No cache archive at fake://archive.zip")
        shutil.copy2(self.stored, destination)
        return "fake://archive.zip"

    def delete(self) -> str:
        if not self.stored.exists():
            raise RemoteNotFoundError("No cache archive at fake://archive.zip to delete.")
        self.stored.unlink()
        return "fake://archive.zip"


@pytest.fixture
def fake_remote(tmp_path: Path) -> FakeRemote:
    return FakeRemote(tmp_path / "remote")


@pytest.fixture
def remote_settings() -> RemoteSettings:
    return RemoteSettings(
        address="https://dav.example.com/files",
        user="ci",
        password="secret",
        project_id="42",
        branch="main",
        os_type=OsType.UNIX,
    )


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def make_config(workdir: Path):
    def _make(directories: list[str] | None = None, files: list[str] | None = None) -> CacheConfig:
        return CacheConfig(
            directories=list(directories or []),
            files=list(files or []),
            staging_dir=workdir / ".cache",
            os_type=OsType.UNIX,
        )

    return _make
