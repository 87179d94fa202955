# launchkit/downloads/tasks.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from launchkit.core.errors import LauncherError

__all__ = [
    "DownloadTask",
    "DownloadProgress",
    "DownloadReport",
    "DownloadFailureCause",
    "DownloadFailed",
    "DownloadCancelled",
    "CancellationToken",
]



@dataclass(frozen=True, slots=True)
class DownloadTask:
    """
    One file to fetch. With a `sha1` the bytes go through the content store
    and `destination` receives a link to the verified object; without one,
    the file is written to `destination` directly.
    """
    url: str
    destination: Path
    sha1: str | None = None
    size: int | None = None
    executable: bool = False
    label: str = ""

    def __str__(self) -> str:
        return self.label or self.destination.name



@dataclass(frozen=True, slots=True)
class DownloadProgress:
    bytesDone: int
    bytesTotal: int
    tasksDone: int
    tasksTotal: int
    tasksSkipped: int = 0
    finished: bool = False

    @property
    def fraction(self) -> float:
        if self.bytesTotal > 0:
            return min(1.0, self.bytesDone / self.bytesTotal)
        if self.tasksTotal > 0:
            return self.tasksDone / self.tasksTotal
        return 1.0



@dataclass(slots=True)
class DownloadReport:
    fetched: list[DownloadTask] = field(default_factory=list)
    skipped: list[DownloadTask] = field(default_factory=list)
    bytesDownloaded: int = 0

    @property
    def total(self) -> int:
        return len(self.fetched) + len(self.skipped)



class DownloadFailureCause(str, Enum):
    NETWORK = "network"
    CHECKSUM_MISMATCH = "checksum-mismatch"
    DISK_WRITE = "disk-write"



class DownloadFailed(LauncherError):
    """A task exhausted its attempts; the batch fails with the first such task."""

    def __init__(self, task: DownloadTask, cause: DownloadFailureCause, *, detail: str = "", attempts: int = 0) -> None:
        message = f"Download of {task} failed ({cause.value})"
        if detail:
            message += f": {detail}"
        super().__init__(message, task=str(task), url=task.url, cause=cause.value, attempts=attempts)
        self.task = task
        self.cause = cause
        self.detail = detail
        self.attempts = attempts



class DownloadCancelled(LauncherError):
    def __init__(self, *, completed: int = 0, total: int = 0) -> None:
        super().__init__(f"Download cancelled ({completed}/{total} tasks completed)", completed=completed, total=total)
        self.completed = completed
        self.total = total



class CancellationToken:
    """Cooperative cancellation shared between a caller and running batches."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raiseIfCancelled(self) -> None:
        if self._event.is_set():
            raise DownloadCancelled()
