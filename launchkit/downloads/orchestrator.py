# launchkit/downloads/orchestrator.py
from __future__ import annotations

import asyncio
import logging
import os
import secrets
from collections import deque
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

import httpx

from launchkit.app.settings import settings
from launchkit.content.store import ContentStore
from launchkit.core.hashing import sha1Bytes
from launchkit.core.logging import logContext
from launchkit.http.client import USER_AGENT, backoffDelayMs, parseRetryAfter, shouldRetry
from .tasks import (
    CancellationToken,
    DownloadCancelled,
    DownloadFailed,
    DownloadFailureCause,
    DownloadProgress,
    DownloadReport,
    DownloadTask,
)

logger = logging.getLogger(__name__)

__all__ = ["DownloadOrchestrator", "DownloadBatch"]



class _RetryableFetch(Exception):
    def __init__(self, detail: str, retryAfter: float | None = None) -> None:
        super().__init__(detail)
        self.retryAfter = retryAfter



class _FatalFetch(Exception):
    pass



class DownloadOrchestrator:
    """
    Fetches DownloadTasks into a ContentStore with a bounded worker pool.

    Knobs default to the `downloads.*` settings. `retries` counts attempts
    after the first one for transient failures (transport errors, 408/429/5xx).
    A checksum or size mismatch is refetched once, then fatal.
    """

    def __init__(
        self,
        store: ContentStore,
        *,
        workers: int | None = None,
        retries: int | None = None,
        backoffBaseMs: int | None = None,
        backoffMaxMs: int | None = None,
        timeoutMs: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        failFast: bool = False,
    ) -> None:
        self.store = store
        self.workers = max(1, int(workers if workers is not None else settings("downloads.workers", 8)))
        self.retries = max(0, int(retries if retries is not None else settings("downloads.retries", 3)))
        self.backoffBaseMs = int(backoffBaseMs if backoffBaseMs is not None else settings("downloads.backoff.baseMs", 250))
        self.backoffMaxMs = int(backoffMaxMs if backoffMaxMs is not None else settings("downloads.backoff.maxMs", 4000))
        self.timeoutMs = int(timeoutMs if timeoutMs is not None else settings("downloads.timeoutMs", 60_000))
        self.transport = transport
        self.failFast = failFast

    def start(self, tasks: Iterable[DownloadTask], token: CancellationToken | None = None) -> DownloadBatch:
        """Schedule `tasks` on the running loop and return the handle right away."""
        batch = DownloadBatch(self, list(tasks), token or CancellationToken())
        batch._runner = asyncio.get_running_loop().create_task(batch._run())
        return batch

    async def download(self, tasks: Iterable[DownloadTask], token: CancellationToken | None = None) -> DownloadReport:
        return await self.start(tasks, token).wait()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(max(1, self.timeoutMs) / 1_000),
            limits=httpx.Limits(max_connections=self.workers, max_keepalive_connections=self.workers),
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            http2=True,
            transport=self.transport,
        )



class DownloadBatch:
    """Handle for one running set of tasks: pull progress, await the outcome."""

    def __init__(self, orchestrator: DownloadOrchestrator, tasks: list[DownloadTask], token: CancellationToken) -> None:
        self.orchestrator = orchestrator
        self.tasks = tasks
        self.token = token
        self.report = DownloadReport()
        self.error: DownloadFailed | None = None
        self._runner: asyncio.Task[DownloadReport] | None = None
        self._pending: deque[DownloadTask] = deque(tasks)
        self._client: httpx.AsyncClient | None = None

        self._bytesDone = 0
        self._bytesTotal = sum(task.size or 0 for task in tasks)
        self._tasksDone = 0
        self._finished = False
        self._seq = 0
        self._updated = asyncio.Event()

    # ----- Progress -----

    def snapshot(self) -> DownloadProgress:
        return DownloadProgress(
            bytesDone=self._bytesDone,
            bytesTotal=self._bytesTotal,
            tasksDone=self._tasksDone,
            tasksTotal=len(self.tasks),
            tasksSkipped=len(self.report.skipped),
            finished=self._finished,
        )

    def _changed(self) -> None:
        self._seq += 1
        event, self._updated = self._updated, asyncio.Event()
        event.set()

    async def progress(self) -> AsyncIterator[DownloadProgress]:
        """
        Snapshots from the current state on, ending with a `finished` one.
        Every call starts a new iterator; a slow consumer sees the latest
        state rather than every intermediate step.
        """
        seen = -1
        while True:
            event = self._updated
            if self._seq == seen:
                await event.wait()
                continue
            seen = self._seq
            snap = self.snapshot()
            yield snap
            if snap.finished:
                return

    @property
    def done(self) -> bool:
        return self._finished

    async def wait(self) -> DownloadReport:
        if self._runner is None:
            raise RuntimeError("Batch was never started")
        return await self._runner

    def cancel(self, reason: str | None = None) -> None:
        self.token.cancel(reason)

    # ----- Running -----

    async def _run(self) -> DownloadReport:
        orch = self.orchestrator
        total = len(self.tasks)
        logger.info("Download batch: %d tasks, %d workers", total, orch.workers)
        try:
            async with orch._client() as client:
                self._client = client
                workerTasks = [asyncio.ensure_future(self._worker(idx)) for idx in range(min(orch.workers, total))]
                workers = asyncio.gather(*workerTasks)
                cancelWait = asyncio.ensure_future(self.token.wait())
                try:
                    await asyncio.wait({workers, cancelWait}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    cancelWait.cancel()
                    # No worker may outlive the client
                    if not workers.done():
                        workers.cancel()
                    for worker in workerTasks:
                        worker.cancel()
                    await asyncio.gather(*workerTasks, return_exceptions=True)
                if workers.cancelled():
                    raise DownloadCancelled(completed=self._tasksDone, total=total)
                try:
                    workers.result()
                except DownloadCancelled:
                    raise DownloadCancelled(completed=self._tasksDone, total=total) from None

            if self.token.cancelled and self._tasksDone < total and self.error is None:
                raise DownloadCancelled(completed=self._tasksDone, total=total)
            if self.error is not None:
                raise self.error
            logger.info(
                "Download batch done: %d fetched, %d skipped, %d bytes",
                len(self.report.fetched), len(self.report.skipped), self.report.bytesDownloaded,
            )
            return self.report
        finally:
            self._client = None
            self._finished = True
            self._changed()

    async def _worker(self, idx: int) -> None:
        while self._pending:
            if self.token.cancelled:
                return
            if self.error is not None and self.orchestrator.failFast:
                return
            task = self._pending.popleft()
            with logContext(task=str(task)):
                try:
                    await self._runTask(task)
                except DownloadCancelled:
                    raise
                except DownloadFailed as err:
                    self._fail(err)
                except Exception as err:
                    logger.exception("Unexpected error while downloading %s", task)
                    failure = DownloadFailed(task, DownloadFailureCause.NETWORK, detail=f"{type(err).__name__}: {err}", attempts=1)
                    failure.__cause__ = err
                    self._fail(failure)

    def _fail(self, err: DownloadFailed) -> None:
        logger.error("%s", err)
        if self.error is None:
            self.error = err

    async def _runTask(self, task: DownloadTask) -> None:
        store = self.orchestrator.store
        if task.sha1:
            async with store.lock(task.sha1):
                if await asyncio.to_thread(store.has, task.sha1):
                    await self._materialize(task)
                    self._finishTask(task, skipped=True)
                    return
                data = await self._fetchVerified(task)
                try:
                    await asyncio.to_thread(store.put, task.sha1, data)
                except OSError as err:
                    raise DownloadFailed(task, DownloadFailureCause.DISK_WRITE, detail=str(err)) from err
                await self._materialize(task)
                self._finishTask(task, downloaded=len(data))
            return

        if task.destination.is_file() and (task.size is None or task.destination.stat().st_size == task.size):
            self._finishTask(task, skipped=True)
            return
        data = await self._fetchVerified(task)
        try:
            await asyncio.to_thread(_writeAtomically, task.destination, data, task.executable)
        except OSError as err:
            raise DownloadFailed(task, DownloadFailureCause.DISK_WRITE, detail=str(err)) from err
        self._finishTask(task, downloaded=len(data))

    async def _materialize(self, task: DownloadTask) -> None:
        assert task.sha1 is not None
        try:
            await asyncio.to_thread(self.orchestrator.store.materialize, task.sha1, task.destination, executable=task.executable)
        except OSError as err:
            raise DownloadFailed(task, DownloadFailureCause.DISK_WRITE, detail=str(err)) from err

    def _finishTask(self, task: DownloadTask, *, skipped: bool = False, downloaded: int = 0) -> None:
        if skipped:
            self.report.skipped.append(task)
            self._bytesDone += task.size or 0
        else:
            self.report.fetched.append(task)
            self.report.bytesDownloaded += downloaded
            if task.size is None:
                self._bytesTotal += downloaded
        self._tasksDone += 1
        logger.debug("%s %s", "Skipped" if skipped else "Fetched", task)
        self._changed()

    async def _fetchVerified(self, task: DownloadTask) -> bytes:
        orch = self.orchestrator
        attempt = 0
        mismatches = 0
        while True:
            self.token.raiseIfCancelled()
            try:
                data = await self._fetch(task)
            except _FatalFetch as err:
                raise DownloadFailed(task, DownloadFailureCause.NETWORK, detail=str(err), attempts=attempt + 1) from err
            except _RetryableFetch as err:
                attempt += 1
                if attempt > orch.retries:
                    raise DownloadFailed(task, DownloadFailureCause.NETWORK, detail=str(err), attempts=attempt) from err
                if err.retryAfter is not None:
                    delayMs = err.retryAfter * 1000.0
                else:
                    delayMs = backoffDelayMs(attempt - 1, orch.backoffBaseMs, orch.backoffMaxMs)
                logger.debug("%s: %s, retry %d in %.0fms", task, err, attempt, delayMs)
                await asyncio.sleep(delayMs / 1000.0)
                continue

            problem = None
            if task.size is not None and len(data) != task.size:
                problem = f"expected {task.size} bytes, got {len(data)}"
            elif task.sha1:
                actual = await asyncio.to_thread(sha1Bytes, data)
                if actual != task.sha1.lower():
                    problem = f"expected sha1 {task.sha1}, got {actual}"
            if problem is None:
                return data

            self._bytesDone -= len(data)
            mismatches += 1
            if mismatches > 1:
                raise DownloadFailed(task, DownloadFailureCause.CHECKSUM_MISMATCH, detail=problem, attempts=attempt + mismatches)
            logger.warning("%s: %s; fetching again", task, problem)

    async def _fetch(self, task: DownloadTask) -> bytes:
        assert self._client is not None
        received = 0
        try:
            async with self._client.stream("GET", task.url) as resp:
                status = resp.status_code
                if status >= 400:
                    detail = f"HTTP {status} from {task.url}"
                    if shouldRetry(status):
                        raise _RetryableFetch(detail, parseRetryAfter(resp.headers.get("Retry-After")))
                    raise _FatalFetch(detail)
                buffer = bytearray()
                async for chunk in resp.aiter_bytes():
                    buffer.extend(chunk)
                    received += len(chunk)
                    self._bytesDone += len(chunk)
                    self._changed()
                return bytes(buffer)
        except (_RetryableFetch, _FatalFetch):
            self._bytesDone -= received
            raise
        except httpx.TooManyRedirects as err:
            self._bytesDone -= received
            raise _FatalFetch(f"{type(err).__name__}: {err}") from err
        except httpx.RequestError as err:
            # transport failures and broken content encodings from a mirror
            self._bytesDone -= received
            raise _RetryableFetch(f"{type(err).__name__}: {err}") from err
        except (httpx.HTTPError, httpx.InvalidURL) as err:
            self._bytesDone -= received
            raise _FatalFetch(f"{type(err).__name__}: {err}") from err



def _writeAtomically(destination: Path, data: bytes, executable: bool) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    tmpPath = destination.with_name(f".{destination.name}.{secrets.token_hex(6)}.part")
    try:
        with open(tmpPath, "wb") as fl:
            fl.write(data)
        if executable:
            os.chmod(tmpPath, 0o755)
        os.replace(tmpPath, destination)
    except BaseException:
        tmpPath.unlink(missing_ok=True)
        raise
