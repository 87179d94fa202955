# tests/launchkit/process/test_supervisor.py
from __future__ import annotations

import signal
import sys
from pathlib import Path

import pytest

from launchkit.launch.assembler import LaunchSpec
from launchkit.process.supervisor import (
    Crashed,
    Exited,
    Killed,
    OutputLine,
    ProcessSpawnFailed,
    ProcessSupervisor,
    _LINE_LIMIT,
)

posixOnly = pytest.mark.skipif(sys.platform.startswith("win"), reason="posix signals")


def _spec(tmp_path, code: str, env: dict[str, str] | None = None) -> LaunchSpec:
    return LaunchSpec(
        executable=Path(sys.executable),
        arguments=("-u", "-c", code),
        environment=env or {},
        workingDir=tmp_path / "game",
    )


async def _collect(sup: ProcessSupervisor) -> list[OutputLine]:
    return [line async for line in sup.lines()]


@pytest.mark.asyncio
async def test_cleanExit_streamsBothOutputs(tmp_path):
    code = "import sys\nprint('hello')\nprint('world')\nprint('oops', file=sys.stderr)\n"
    sup = ProcessSupervisor(_spec(tmp_path, code), instanceName="survival")
    seen = []
    sup.onExit(seen.append)

    await sup.start()
    assert sup.pid is not None
    lines = await _collect(sup)
    status = await sup.wait()

    assert status == Exited(0)
    assert sup.status == status
    assert [l.text for l in lines if l.stream == "stdout"] == ["hello", "world"]
    assert [l.text for l in lines if l.stream == "stderr"] == ["oops"]
    assert seen == [status]


@pytest.mark.asyncio
async def test_environmentAndWorkingDir(tmp_path):
    code = "import os\nprint(os.environ['LAUNCHKIT_MARKER'])\nprint(os.getcwd())\n"
    sup = ProcessSupervisor(_spec(tmp_path, code, {"LAUNCHKIT_MARKER": "42"}))

    await sup.start()
    lines = [l.text for l in await _collect(sup)]
    await sup.wait()

    assert lines[0] == "42"
    assert Path(lines[1]).resolve() == (tmp_path / "game").resolve()


@pytest.mark.asyncio
async def test_nonZeroExit_isCrashWithTail(tmp_path):
    code = "import sys\nprint('loading')\nprint('Exception in thread main', file=sys.stderr)\nsys.exit(3)\n"
    sup = ProcessSupervisor(_spec(tmp_path, code))

    await sup.start()
    status = await sup.wait()

    assert isinstance(status, Crashed)
    assert status.code == 3
    assert sorted(status.tail) == ["Exception in thread main", "loading"]


@pytest.mark.asyncio
async def test_crashTail_keepsLastLines(tmp_path):
    code = "import sys\nfor i in range(5):\n    print('line', i)\nsys.exit(1)\n"
    sup = ProcessSupervisor(_spec(tmp_path, code), tailSize=3)

    await sup.start()
    status = await sup.wait()

    assert status == Crashed(1, ("line 2", "line 3", "line 4"))


@pytest.mark.asyncio
async def test_missingExecutable_raisesSpawnFailed(tmp_path):
    spec = LaunchSpec(
        executable=tmp_path / "no-such-java",
        arguments=("-version",),
        environment={},
        workingDir=tmp_path / "game",
    )
    sup = ProcessSupervisor(spec)

    with pytest.raises(ProcessSpawnFailed) as excinfo:
        await sup.start()

    assert excinfo.value.executable == str(tmp_path / "no-such-java")
    assert excinfo.value.context()["executable"] == str(tmp_path / "no-such-java")
    assert sup.status is None
    with pytest.raises(RuntimeError):
        await sup.wait()


@pytest.mark.asyncio
async def test_spawnFailure_namesMissingWrapper(tmp_path):
    spec = LaunchSpec(
        executable=Path(sys.executable),
        arguments=("-c", "pass"),
        environment={},
        workingDir=tmp_path / "game",
        prefix=(str(tmp_path / "no-such-wrapper"),),
    )

    with pytest.raises(ProcessSpawnFailed) as excinfo:
        await ProcessSupervisor(spec).start()

    assert excinfo.value.executable == str(tmp_path / "no-such-wrapper")


@posixOnly
@pytest.mark.asyncio
async def test_stop_terminatesRunningProcess(tmp_path):
    code = "import time\nprint('ready')\ntime.sleep(60)\n"
    sup = ProcessSupervisor(_spec(tmp_path, code))
    seen = []
    sup.onExit(seen.append)
    await sup.start()

    lines = sup.lines()
    first = await lines.__anext__()
    assert first.text == "ready"

    status = await sup.stop(graceSeconds=10)

    assert status == Killed(-signal.SIGTERM)
    assert await sup.wait() == status
    assert seen == [status]
    # stopping again just reports the outcome
    assert await sup.stop() == status


@posixOnly
@pytest.mark.asyncio
async def test_stop_killsWhenTerminateIgnored(tmp_path):
    code = (
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready')\n"
        "time.sleep(60)\n"
    )
    sup = ProcessSupervisor(_spec(tmp_path, code))
    await sup.start()
    assert (await sup.lines().__anext__()).text == "ready"

    status = await sup.stop(graceSeconds=0.5)

    assert status == Killed(-signal.SIGKILL)


@pytest.mark.asyncio
async def test_onExit_afterEnd_isCalledImmediately(tmp_path):
    sup = ProcessSupervisor(_spec(tmp_path, "pass"))
    await sup.start()
    status = await sup.wait()

    seen = []
    sup.onExit(seen.append)
    assert seen == [status]


@pytest.mark.asyncio
async def test_lines_singleConsumer(tmp_path):
    sup = ProcessSupervisor(_spec(tmp_path, "print('x')"))
    await sup.start()
    lines = await _collect(sup)
    assert [l.text for l in lines] == ["x"]

    with pytest.raises(RuntimeError):
        await sup.lines().__anext__()


@pytest.mark.asyncio
async def test_start_twice_isRejected(tmp_path):
    sup = ProcessSupervisor(_spec(tmp_path, "pass"))
    await sup.start()
    with pytest.raises(RuntimeError):
        await sup.start()
    await sup.wait()


@pytest.mark.asyncio
async def test_failingListener_doesNotBreakOthers(tmp_path):
    sup = ProcessSupervisor(_spec(tmp_path, "pass"))
    seen = []

    def broken(status):
        raise ValueError("listener bug")

    sup.onExit(broken)
    sup.onExit(seen.append)
    await sup.start()

    assert await sup.wait() == Exited(0)
    assert seen == [Exited(0)]


@pytest.mark.asyncio
async def test_overlongLine_isTruncated_andStatusStillReported(tmp_path):
    code = "import sys\nsys.stdout.write('x' * (2 * 1024 * 1024) + '\\n')\nprint('after')\n"
    sup = ProcessSupervisor(_spec(tmp_path, code))
    seen = []
    sup.onExit(seen.append)

    await sup.start()
    lines = await _collect(sup)
    status = await sup.wait()

    assert status == Exited(0)
    assert seen == [status]
    assert [len(l.text) for l in lines] == [_LINE_LIMIT, 5]
    assert set(lines[0].text) == {"x"}
    assert lines[1].text == "after"


@pytest.mark.asyncio
async def test_unreadOutput_keepsOnlyBacklog(tmp_path):
    code = "for i in range(20000):\n    print(i)\n"
    sup = ProcessSupervisor(_spec(tmp_path, code), backlog=100)

    await sup.start()
    assert await sup.wait() == Exited(0)

    lines = [l.text for l in await _collect(sup)]
    assert len(lines) == 100
    assert lines[0] == "19900"
    assert lines[-1] == "19999"
