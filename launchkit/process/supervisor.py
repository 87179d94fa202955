# launchkit/process/supervisor.py
from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Literal, Union

import psutil

from launchkit.app.settings import settings
from launchkit.core.errors import LauncherError
from launchkit.core.logging import getGameLogger
from launchkit.core.redaction import redactArguments, redactText
from launchkit.launch.assembler import LaunchSpec

logger = logging.getLogger(__name__)

__all__ = [
    "OutputLine",
    "Exited",
    "Crashed",
    "Killed",
    "ProcessStatus",
    "ProcessSpawnFailed",
    "ProcessSupervisor",
    "killProcessTree",
]

_LINE_LIMIT = 1024 * 1024



@dataclass(frozen=True, slots=True)
class OutputLine:
    stream: Literal["stdout", "stderr"]
    text: str



@dataclass(frozen=True, slots=True)
class Exited:
    code: int



@dataclass(frozen=True, slots=True)
class Crashed:
    """Non-zero exit or death by signal (negative code on POSIX)."""
    code: int | None
    tail: tuple[str, ...] = ()



@dataclass(frozen=True, slots=True)
class Killed:
    """Ended because stop() was called."""
    code: int | None = None


ProcessStatus = Union[Exited, Crashed, Killed]
StatusListener = Callable[[ProcessStatus], None]



class ProcessSpawnFailed(LauncherError):
    def __init__(self, executable: str, reason: str) -> None:
        super().__init__(f"Could not start '{executable}': {reason}", executable=executable)
        self.executable = executable
        self.reason = reason



def killProcessTree(pid: int) -> None:
    try:
        proc = psutil.Process(pid)
        for child in proc.children(recursive=True):
            try:
                child.kill()
            except psutil.NoSuchProcess:
                pass
        proc.kill()
    except psutil.NoSuchProcess:
        pass



async def _readLine(stream: asyncio.StreamReader) -> bytes | None:
    """Next line of output, or None at EOF. Bytes past _LINE_LIMIT are dropped."""
    head = bytearray()
    while True:
        done = True
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as err:
            chunk = err.partial
            if not chunk and not head:
                return None
        except asyncio.LimitOverrunError as err:
            chunk = await stream.readexactly(err.consumed)
            done = False
        if len(head) < _LINE_LIMIT:
            head += chunk[: _LINE_LIMIT - len(head)]
        if done:
            return bytes(head)



class ProcessSupervisor:
    """
    Runs one LaunchSpec as a child process.

    Output lines from both streams are queued in arrival order for lines().
    At most `backlog` unread lines are held; older ones are dropped (the crash
    tail is kept separately). The terminal status is decided once and
    delivered to wait() callers and to every listener exactly once. Nothing
    is restarted automatically.
    """

    def __init__(
        self,
        spec: LaunchSpec,
        *,
        instanceName: str | None = None,
        tailSize: int = 50,
        backlog: int = 10_000,
    ) -> None:
        self.spec = spec
        self.instanceName = instanceName
        self._gameLogger = getGameLogger(instanceName or "default")
        self._tail: deque[str] = deque(maxlen=tailSize)
        self._backlog = max(1, backlog)
        self._queue: asyncio.Queue[OutputLine | None] = asyncio.Queue()
        self._dropped = 0
        self._proc: asyncio.subprocess.Process | None = None
        self._watcher: asyncio.Task[ProcessStatus] | None = None
        self._status: ProcessStatus | None = None
        self._listeners: list[StatusListener] = []
        self._stopRequested = False
        self._linesTaken = False

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def status(self) -> ProcessStatus | None:
        return self._status

    def onExit(self, fn: StatusListener) -> None:
        if self._status is not None:
            fn(self._status)
            return
        self._listeners.append(fn)

    async def start(self) -> None:
        if self._proc is not None:
            raise RuntimeError("Process already started; create a new supervisor to relaunch")
        command = self.spec.commandLine()
        env = dict(os.environ)
        env.update(self.spec.environment)
        logger.info("Launching: %s", " ".join(redactArguments(command)))
        try:
            self.spec.workingDir.mkdir(parents=True, exist_ok=True)
            self._proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.spec.workingDir),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_LINE_LIMIT,
            )
        except OSError as err:
            raise ProcessSpawnFailed(command[0], err.strerror or str(err)) from err
        logger.info("Started pid %d", self._proc.pid)
        self._watcher = asyncio.get_running_loop().create_task(self._watch())

    def _enqueue(self, line: OutputLine) -> None:
        if self._queue.qsize() >= self._backlog:
            self._queue.get_nowait()
            if not self._dropped:
                logger.debug("Output backlog full (%d lines), dropping oldest", self._backlog)
            self._dropped += 1
        self._queue.put_nowait(line)

    async def _pump(self, stream: asyncio.StreamReader, name: Literal["stdout", "stderr"]) -> None:
        while (raw := await _readLine(stream)) is not None:
            text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            self._tail.append(text)
            self._gameLogger.debug("%s", redactText(text))
            self._enqueue(OutputLine(name, text))

    def _decide(self, code: int | None) -> ProcessStatus:
        if self._stopRequested:
            return Killed(code)
        if code == 0:
            return Exited(code)
        return Crashed(code, tuple(self._tail))

    async def _watch(self) -> ProcessStatus:
        assert self._proc is not None
        proc = self._proc
        assert proc.stdout is not None and proc.stderr is not None
        code: int | None = None
        try:
            results = await asyncio.gather(
                self._pump(proc.stdout, "stdout"),
                self._pump(proc.stderr, "stderr"),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Reading output of pid %d failed: %r", proc.pid, result)
            code = await proc.wait()
        finally:
            status = self._decide(code if code is not None else proc.returncode)
            self._status = status
            self._queue.put_nowait(None)
            self._notify(proc.pid, status)
        return status

    def _notify(self, pid: int, status: ProcessStatus) -> None:
        level = logging.INFO if isinstance(status, Exited) else logging.WARNING
        logger.log(level, "Process %d ended: %s", pid, status)
        if self._dropped:
            logger.debug("%d output lines were dropped unread", self._dropped)
        listeners, self._listeners = self._listeners, []
        for fn in listeners:
            try:
                fn(status)
            except Exception:
                logger.exception("Exit listener failed")

    async def lines(self) -> AsyncIterator[OutputLine]:
        """Output lines until the process ends. One consumer per supervisor."""
        if self._linesTaken:
            raise RuntimeError("lines() can only be consumed once")
        self._linesTaken = True
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item

    async def wait(self) -> ProcessStatus:
        if self._watcher is None:
            raise RuntimeError("Process not started")
        return await asyncio.shield(self._watcher)

    async def stop(self, graceSeconds: float | None = None) -> ProcessStatus:
        """Ask the process to terminate; kill the whole tree after the grace period."""
        if self._proc is None or self._watcher is None:
            raise RuntimeError("Process not started")
        if self._status is not None:
            return self._status
        grace = float(graceSeconds if graceSeconds is not None else settings("process.graceSeconds", 10.0))
        self._stopRequested = True
        try:
            self._proc.terminate()
        except ProcessLookupError:
            pass
        try:
            return await asyncio.wait_for(asyncio.shield(self._watcher), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Process %d ignored terminate for %.1fs, killing tree", self._proc.pid, grace)
            killProcessTree(self._proc.pid)
            return await self._watcher
