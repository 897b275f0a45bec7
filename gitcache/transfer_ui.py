from __future__ import annotations

from typing import BinaryIO, Callable

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class ArchiveTransferProgress:
    """One progress bar for a single archive upload or download."""

    def __init__(
        self,
        console: Console,
        *,
        action: str,
        archive_name: str,
        total_bytes: int | None,
    ) -> None:
        self.total_bytes = total_bytes
        self._sent = 0
        self._progress = Progress(
            TextColumn("[bold]{task.fields[action]}"),
            TextColumn("{task.description}"),
            BarColumn(),
            DownloadColumn(binary_units=True),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            TextColumn("{task.fields[state]}"),
            console=console,
        )
        self._task: TaskID = self._progress.add_task(
            archive_name,
            total=total_bytes,
            action=action,
            state="",
        )

    def __enter__(self) -> "ArchiveTransferProgress":
        self._progress.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._progress.update(self._task, state="[red]failed")
        self._progress.stop()

    def advance(self, nbytes: int) -> None:
        # Never run past the announced size when a reader is rewound and re-read.
        if self.total_bytes is not None:
            nbytes = min(nbytes, self.total_bytes - self._sent)
        if nbytes > 0:
            self._sent += nbytes
            self._progress.update(self._task, advance=nbytes)

    def finish(self, total_bytes: int | None = None) -> None:
        done = total_bytes if total_bytes is not None else self._sent
        self._progress.update(self._task, total=done, completed=done, state="[green]done")

    def mark_failed(self) -> None:
        self._progress.update(self._task, state="[red]failed")


class ProgressReader:
    """File wrapper handed to requests as an upload body.

    `__len__` lets requests send a Content-Length header instead of a
    chunked body, which many WebDAV servers refuse.
    """

    def __init__(self, file_obj: BinaryIO, size: int, on_read: Callable[[int], None]) -> None:
        self._file = file_obj
        self._size = size
        self._on_read = on_read

    def __len__(self) -> int:
        return self._size

    def read(self, size: int = -1) -> bytes:
        data = self._file.read(size)
        if data:
            self._on_read(len(data))
        return data
