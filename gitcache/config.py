from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from gitcache.errors import ConfigError, UnsupportedOsError
from gitcache.models import OsType


DIRECTORY_PREFIX = "cachepath_"
FILE_PREFIX = "cachefile_"
REMOTE_NAMESPACE = "gitcache"
DEFAULT_STAGING_DIRNAME = ".cache"

USER_ENV = "WEBDAVUSER"
PASSWORD_ENV = "WEBDAVPASS"
ADDRESS_ENV = "WEBDAVADDR"
TIMEOUT_ENV = "WEBDAVTIMEOUT"
PROJECT_ENV = "CI_PROJECT_ID"
BRANCH_ENVS = ("CI_COMMIT_BRANCH", "CI_MERGE_REQUEST_TARGET_BRANCH_NAME")
STAGING_ENV = "GITCACHE_STAGING_DIR"


@dataclass(slots=True)
class CacheConfig:
    directories: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    staging_dir: Path = field(default_factory=lambda: Path.cwd() / DEFAULT_STAGING_DIRNAME)
    os_type: OsType = OsType.UNIX

    @property
    def has_sources(self) -> bool:
        return bool(self.directories or self.files)


@dataclass(slots=True)
class RemoteSettings:
    address: str
    user: str
    password: str
    project_id: str
    branch: str
    os_type: OsType
    timeout: float | None = None

    @property
    def archive_name(self) -> str:
        return archive_name(self.os_type, self.branch)

    @property
    def namespace_url(self) -> str:
        return f"{self.address.rstrip('/')}/{REMOTE_NAMESPACE}"

    @property
    def project_url(self) -> str:
        return f"{self.namespace_url}/{self.project_id}"

    @property
    def archive_url(self) -> str:
        return f"{self.project_url}/{self.archive_name}"


def archive_name(os_type: OsType, branch: str) -> str:
    if os_type is OsType.UNKNOWN:
        raise UnsupportedOsError("Archive names are only defined for Windows and Unix hosts.")
    # Branch names like `feature/x` must stay a single remote path segment.
    safe_branch = branch.replace("/", "_").replace("\\", "_")
    return f"{os_type.value}-{safe_branch}.zip"


def scan_prefixed(environ: Mapping[str, str], prefix: str) -> list[str]:
    """Return the values of every variable whose name starts with `prefix`, ordered by name."""
    return [
        value
        for name, value in sorted(environ.items())
        if name.startswith(prefix) and value.strip()
    ]


def load_cache_config(
    environ: Mapping[str, str] | None = None,
    *,
    base_dir: Path | None = None,
) -> CacheConfig:
    env = os.environ if environ is None else environ
    base = (base_dir or Path.cwd()).resolve()
    staging_value = env.get(STAGING_ENV, "").strip()
    staging_dir = Path(staging_value) if staging_value else Path(DEFAULT_STAGING_DIRNAME)
    if not staging_dir.is_absolute():
        staging_dir = base / staging_dir

    return CacheConfig(
        directories=scan_prefixed(env, DIRECTORY_PREFIX),
        files=scan_prefixed(env, FILE_PREFIX),
        staging_dir=staging_dir,
        os_type=OsType.detect(),
    )


def load_remote_settings(
    environ: Mapping[str, str] | None = None,
    *,
    os_type: OsType | None = None,
) -> RemoteSettings:
    env = os.environ if environ is None else environ
    os_type = os_type or OsType.detect()
    if os_type is OsType.UNKNOWN:
        raise UnsupportedOsError("Detected an unknown or unsupported operating system.")

    missing: list[str] = []

    def _required(name: str) -> str:
        value = env.get(name, "").strip()
        if not value:
            missing.append(name)
        return value

    user = _required(USER_ENV)
    password = _required(PASSWORD_ENV)
    address = _required(ADDRESS_ENV)
    project_id = _required(PROJECT_ENV)

    branch = ""
    for name in BRANCH_ENVS:
        branch = env.get(name, "").strip()
        if branch:
            break
    if not branch:
        missing.append(" or ".join(BRANCH_ENVS))

    if missing:
        raise ConfigError(
            "Missing required environment variable(s): "
            + ", ".join(missing)
            + ". Unauthenticated WebDAV servers are not supported."
        )

    return RemoteSettings(
        address=address.rstrip("/"),
        user=user,
        password=password,
        project_id=project_id,
        branch=branch,
        os_type=os_type,
        timeout=_parse_timeout(env.get(TIMEOUT_ENV, "")),
    )


def _parse_timeout(raw: str) -> float | None:
    value = raw.strip()
    if not value:
        return None
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ConfigError(f"{TIMEOUT_ENV} must be a number of seconds, got {raw!r}") from exc
    if timeout <= 0:
        raise ConfigError(f"{TIMEOUT_ENV} must be positive, got {raw!r}")
    return timeout
