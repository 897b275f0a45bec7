from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import requests
from rich.console import Console

from gitcache.config import RemoteSettings
from gitcache.errors import CollectionSetupError, RemoteNotFoundError, TransportError
from gitcache.transfer_ui import ArchiveTransferProgress, ProgressReader


logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_BYTES = 1024 * 1024
USER_AGENT = "gitcache/0.1"

_STATUS_HINTS = {
    401: "the server rejected the WebDAV credentials",
    403: "the server returned FORBIDDEN; check that the account may create and upload files",
    409: "the server returned CONFLICT; a parent collection is missing or unreadable",
    507: "the server ran out of storage",
}


def _describe_status(response: requests.Response) -> str:
    hint = _STATUS_HINTS.get(response.status_code)
    base = f"HTTP {response.status_code} {response.reason or ''}".strip()
    return f"{base} ({hint})" if hint else base


class WebDavClient:
    def __init__(
        self,
        settings: RemoteSettings,
        *,
        session: requests.Session | None = None,
        console: Console | None = None,
    ) -> None:
        self.settings = settings
        self.console = console
        self.session = session or requests.Session()
        self.session.auth = (settings.user, settings.password)
        self.session.headers.update({"User-Agent": USER_AGENT})

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.settings.timeout)
        try:
            return self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    def collection_exists(self, url: str) -> bool:
        response = self._request("PROPFIND", url, headers={"Depth": "0"})
        if response.status_code in (200, 207):
            return True
        if response.status_code == 404:
            return False
        raise TransportError(f"Could not inspect {url}: {_describe_status(response)}")

    def make_collection(self, url: str) -> None:
        response = self._request("MKCOL", url)
        if response.status_code in (200, 201, 202):
            logger.info("Created remote collection %s", url)
            return
        if response.status_code == 405:
            # MKCOL on an existing collection.
            logger.debug("Remote collection %s already exists", url)
            return
        raise TransportError(f"Could not create {url}: {_describe_status(response)}")

    def ensure_collections(self) -> None:
        """Create `<addr>/gitcache` and the project collection when they are missing."""
        for url in (self.settings.namespace_url, self.settings.project_url):
            try:
                if self.collection_exists(url):
                    logger.debug("Remote collection %s exists", url)
                    continue
                self.make_collection(url)
            except CollectionSetupError:
                raise
            except TransportError as exc:
                raise CollectionSetupError(str(exc)) from exc

    def upload(self, local_path: Path) -> str:
        url = self.settings.archive_url
        size = local_path.stat().st_size

        try:
            with local_path.open("rb") as raw:
                if self.console is None:
                    response = self._request("PUT", url, data=raw)
                else:
                    with ArchiveTransferProgress(
                        self.console, action="PUT", archive_name=local_path.name, total_bytes=size
                    ) as progress:
                        body = ProgressReader(raw, size, progress.advance)
                        response = self._request("PUT", url, data=body)
                        if response.ok:
                            progress.finish(size)
                        else:
                            progress.mark_failed()
        except OSError as exc:
            raise TransportError(f"Could not read {local_path} for upload: {exc}") from exc

        if response.status_code not in (200, 201, 204):
            raise TransportError(f"Upload to {url} failed: {_describe_status(response)}")
        logger.info("Uploaded %s (%d bytes) to %s", local_path.name, size, url)
        return url

    def download(self, destination: Path) -> str:
        url = self.settings.archive_url
        response = self._request("GET", url, stream=True)
        with response:
            if response.status_code == 404:
                raise RemoteNotFoundError(
                    f"No cache archive at {url}. It has probably not been uploaded yet."
                )
            if response.status_code != 200:
                raise TransportError(f"Download from {url} failed: {_describe_status(response)}")

            length = response.headers.get("Content-Length")
            total = int(length) if length and length.isdigit() else None
            try:
                if self.console is None:
                    self._write_body(response, destination, None)
                else:
                    with ArchiveTransferProgress(
                        self.console, action="GET", archive_name=destination.name, total_bytes=total
                    ) as progress:
                        self._write_body(response, destination, progress.advance)
                        progress.finish(destination.stat().st_size)
            except OSError as exc:
                raise TransportError(f"Could not write downloaded archive to {destination}: {exc}") from exc
            except requests.exceptions.RequestException as exc:
                raise TransportError(f"Download from {url} was interrupted: {exc}") from exc

        logger.info("Downloaded %s to %s", url, destination)
        return url

    @staticmethod
    def _write_body(
        response: requests.Response,
        destination: Path,
        on_chunk: Callable[[int], None] | None,
    ) -> None:
        with destination.open("wb") as fh:
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                if not chunk:
                    continue
                fh.write(chunk)
                if on_chunk is not None:
                    on_chunk(len(chunk))

    def delete(self) -> str:
        url = self.settings.archive_url
        response = self._request("DELETE", url)
        if response.status_code == 404:
            raise RemoteNotFoundError(f"No cache archive at {url} to delete.")
        if response.status_code not in (200, 202, 204):
            raise TransportError(f"Deleting {url} failed: {_describe_status(response)}")
        logger.info("Deleted remote cache %s", url)
        return url
